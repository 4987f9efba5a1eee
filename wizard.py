"""
AI setup wizard.

The wizard is a chat transcript in which every AI message offers a set of
buttons (actions). The user either clicks one of the offered actions or types
free text; the current state decides what happens next. State and the
currently offered actions are stored per project in `wizard_sessions`, every
line of the conversation in `chat_messages` (channel "wizard").
"""
import logging

import requests

import codegen
import gemini
import gtm_utils
import memory
import prompt
import tracking_ids
from activity import feed
from models import db, WizardSession

logger = logging.getLogger(__name__)

CHANNEL = "wizard"

# States
START = "start"
AWAITING_AUTH = "awaiting_auth"
CHOOSE_CONTAINER = "choose_container"
AWAITING_GTM_ID = "awaiting_gtm_id"
CHOOSE_PLATFORM = "choose_platform"
AWAITING_GOOGLE_ADS_ID = "awaiting_google_ads_id"
AWAITING_META_PIXEL_ID = "awaiting_meta_pixel_id"
AWAITING_TIKTOK_PIXEL_ID = "awaiting_tiktok_pixel_id"
FINISHED = "finished"
COMPLETE = "complete"

GOOGLE_PERMISSIONS_URL = "https://myaccount.google.com/permissions"

PLATFORMS = {
    "google_ads": {
        "name": "Google Ads",
        "field": "google_ads_customer_id",
        "state": AWAITING_GOOGLE_ADS_ID,
        "help_action": "help_google_ads",
        "ask": ("Great! For Google Ads I need your Customer ID (format: 000-000-0000).\n\n"
                "You can find it in the top right corner of your Google Ads dashboard."),
        "help": ("To find your Google Ads Customer ID:\n\n"
                 "1. Go to ads.google.com\n"
                 "2. Sign in to your account\n"
                 "3. Click the account icon in the top right corner\n"
                 "4. The Customer ID appears as 000-000-0000\n\n"
                 "What is your Customer ID?"),
    },
    "meta_ads": {
        "name": "Meta Ads",
        "field": "meta_pixel_id",
        "state": AWAITING_META_PIXEL_ID,
        "help_action": "help_meta",
        "ask": ("For Meta Ads I need your Pixel ID (format: 0000000000000000).\n\n"
                "You can find it in Facebook's Events Manager."),
        "help": ("To find your Meta Pixel ID:\n\n"
                 "1. Go to business.facebook.com\n"
                 "2. Open \"Events\" > \"Events Manager\"\n"
                 "3. Select your Pixel\n"
                 "4. The ID appears as 0000000000000000\n\n"
                 "What is your Pixel ID?"),
    },
    "tiktok_ads": {
        "name": "TikTok Ads",
        "field": "tiktok_pixel_id",
        "state": AWAITING_TIKTOK_PIXEL_ID,
        "help_action": "help_tiktok",
        "ask": ("For TikTok Ads I need your Pixel ID (format: C00000000000000000).\n\n"
                "You can find it in TikTok Events Manager."),
        "help": ("To find your TikTok Pixel ID:\n\n"
                 "1. Go to ads.tiktok.com\n"
                 "2. Open \"Assets\" > \"Events\"\n"
                 "3. Select your Pixel\n"
                 "4. The ID appears as C00000000000000000\n\n"
                 "What is your Pixel ID?"),
    },
}

AWAITING_PLATFORM = {p["state"]: key for key, p in PLATFORMS.items()}
HELP_ACTIONS = {p["help_action"]: key for key, p in PLATFORMS.items()}


class WizardError(Exception):
    pass


def action(action_id, label, variant="primary"):
    return {"id": action_id, "label": label, "variant": variant}


class SetupWizard:
    def __init__(self, project, user, provider_token=None):
        self.project = project
        self.user = user
        self.provider_token = provider_token
        self.session_row = db.session.get(WizardSession, project.id)
        if self.session_row is None:
            self.session_row = WizardSession(project_id=project.id, state=START, offered_actions=[])
            db.session.add(self.session_row)
        self.replies = []
        self.requires_auth = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self):
        return self.session_row.state

    @property
    def offered(self):
        return list(self.session_row.offered_actions or [])

    def snapshot(self):
        return {
            "state": self.state,
            "actions": self.offered,
            "transcript": [m.to_dict() for m in memory.get_history(self.user.id, self.project.id, CHANNEL)],
        }

    def handle(self, action_id=None, message=None):
        """Advance the wizard by one user input. Returns the new AI messages."""
        if action_id is not None and not isinstance(action_id, str):
            raise WizardError("Action must be a string")
        if message is not None and not isinstance(message, str):
            raise WizardError("Message must be a string")

        if action_id == "restart":
            self._set_state(START)
            self._start()
        elif action_id:
            offered = {a["id"]: a for a in self.offered}
            if action_id not in offered:
                raise WizardError(f"Action '{action_id}' is not available in state '{self.state}'")
            self._say_user(offered[action_id]["label"])
            self._dispatch(action_id)
        elif message and message.strip():
            self._say_user(message.strip())
            self._on_text(message.strip())
        elif self.state == START and not self.offered:
            self._start()
        else:
            raise WizardError("Provide an action or a message")

        db.session.commit()
        return {
            "state": self.state,
            "messages": self.replies,
            "actions": self.offered,
            "requires_auth": self.requires_auth,
            "scopes": gtm_utils.GTM_SCOPES if self.requires_auth else [],
        }

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------
    def _say_user(self, content):
        memory.save_message(self.user.id, self.project.id, memory.USER, content, channel=CHANNEL)

    def _reply(self, content, actions=None):
        actions = actions or []
        memory.save_message(self.user.id, self.project.id, memory.MODEL, content, channel=CHANNEL, actions=actions)
        self.session_row.offered_actions = actions
        self.replies.append({"role": memory.MODEL, "content": content, "actions": actions})

    def _set_state(self, state):
        logger.debug("Wizard for project %s: %s -> %s", self.project.id, self.session_row.state, state)
        self.session_row.state = state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _dispatch(self, action_id):
        if action_id == "connect_google":
            self._connect_google()
        elif action_id == "retry_gtm_check":
            self._check_containers()
        elif action_id.startswith("use_container_"):
            self._use_container(action_id[len("use_container_"):])
        elif action_id == "create_new_container":
            self._create_container()
        elif action_id in PLATFORMS:
            self._ask_platform(action_id)
        elif action_id in HELP_ACTIONS:
            self._platform_help(HELP_ACTIONS[action_id])
        elif action_id in ("skip_platforms", "finish_setup", "manual_setup"):
            self._finish()
        elif action_id == "show_script":
            self._show_script()
        elif action_id == "complete":
            self._complete()
        else:
            raise WizardError(f"Unknown action '{action_id}'")

    def _start(self):
        if self.provider_token:
            self._reply(
                f"Hello! I'm the Tag Mage AI assistant. I'll help you set up tracking for the project "
                f"\"{self.project.name}\". Your Google account is already connected."
            )
            self._check_containers()
            return

        self._reply(
            f"Hello! I'm the Tag Mage AI assistant. I'll help you set up tracking for the project "
            f"\"{self.project.name}\".\n\nFirst, let's connect your Google account. That lets me create "
            f"and manage resources in Google Tag Manager and Google Ads for you.",
            [action("connect_google", "Connect with Google")]
        )

    def _connect_google(self):
        if self.provider_token:
            self._reply("Great! Your Google account is already connected. Let's continue.")
            self._check_containers()
            return

        self._set_state(AWAITING_AUTH)
        self.requires_auth = True
        self._reply(
            "OK, I'll send you to the Google sign-in screen. Please grant the requested "
            "permissions so I can continue.",
            [action("connect_google", "Connect with Google")]
        )

    def _check_containers(self):
        if not self.provider_token:
            self._set_state(AWAITING_AUTH)
            self._reply("Your session seems to have expired. Please connect with Google again.",
                        [action("connect_google", "Connect with Google")])
            return

        self._set_state(CHOOSE_CONTAINER)
        self._reply("Looking up your Google Tag Manager containers... one moment.")

        try:
            containers = gtm_utils.list_containers(self.provider_token)
        except gtm_utils.GTMError as e:
            logger.warning("GTM container check failed for project %s: %s (%s)", self.project.id, e, e.code)
            if e.code == "TOKEN_EXPIRED":
                self._set_state(AWAITING_AUTH)
                self._reply(
                    "Authentication required\n\nYour Google token expired or is invalid. To fix it:\n\n"
                    f"1. Open your Google Account security page: {GOOGLE_PERMISSIONS_URL}\n"
                    "2. Find Tag Mage in the list of apps and click \"Remove access\".\n"
                    "3. Come back here and click 'Connect with Google' again.",
                    [action("connect_google", "Connect with Google")]
                )
            elif e.code == "INSUFFICIENT_PERMISSIONS":
                self._set_state(AWAITING_AUTH)
                self._reply(
                    "Insufficient permissions\n\nYou don't have permission to access Google Tag Manager. Check that:\n\n"
                    "1. You have access to Google Tag Manager\n"
                    "2. Your account has the required permissions\n"
                    "3. The Google Cloud project is configured correctly",
                    [action("connect_google", "Try again")]
                )
            else:
                self._unexpected_container_error()
            return
        except requests.RequestException as e:
            logger.warning("GTM container check failed for project %s: %s", self.project.id, e)
            self._unexpected_container_error()
            return

        if not containers:
            self._reply(
                "Connected! But I didn't find any GTM container in your account.\n\n"
                "I'll create a new container for you. This is normal if you don't use Google Tag Manager yet.",
                [action("create_new_container", "Create New Container")]
            )
            return

        listing = "\n".join(f"• {c['name']} ({c['publicId']})" for c in containers)
        actions = [action(f"use_container_{c['publicId']}", f"Use {c['name']}") for c in containers]
        actions.append(action("create_new_container", "Create New Container", "secondary"))
        self._reply(
            f"I found {len(containers)} GTM container(s) in your account!\n\n{listing}\n\n"
            "Which one would you like to use for this project?",
            actions
        )

    def _unexpected_container_error(self):
        self._reply(
            "Unexpected error.\n\nLet's try again, or you can set things up manually.",
            [action("retry_gtm_check", "Try Again"), action("manual_setup", "Manual Setup", "secondary")]
        )

    def _use_container(self, public_id):
        self.project.gtm_id = public_id
        feed.log_event(self.user.id, f"GTM container {public_id} linked to '{self.project.name}'", self.project.id)
        self._reply(f"Perfect! I'll use the container {public_id} for this project.")
        self._platform_menu("Now let's set up your marketing platforms. Which platforms do you advertise on?")

    def _create_container(self):
        if not self.provider_token:
            self._set_state(AWAITING_AUTH)
            self._reply("I need you to connect your Google account first.",
                        [action("connect_google", "Connect with Google")])
            return

        self._reply("Creating GTM container... this may take a few seconds.")
        try:
            container = gtm_utils.create_container(self.provider_token, self.project.name, self.project.url)
        except (gtm_utils.GTMError, requests.RequestException) as e:
            logger.error("GTM container creation failed for project %s: %s", self.project.id, e)
            self._set_state(AWAITING_GTM_ID)
            self._reply(
                f"Error creating container: {e}\n\nWe can try again, or you can type the ID of "
                f"your GTM container ({tracking_ids.example('gtm_id')}).",
                [action("create_new_container", "Try Again"), action("manual_setup", "Manual Setup", "secondary")]
            )
            return

        self.project.gtm_id = container["publicId"]
        feed.log_event(self.user.id, f"GTM container {container['publicId']} created for '{self.project.name}'", self.project.id)
        self._reply(f"GTM container created!\n\nID: {container['publicId']}")
        self._platform_menu("Now let's set up your marketing platforms. Which platforms do you advertise on?")

    def _platform_menu(self, intro):
        self._set_state(CHOOSE_PLATFORM)
        pending = [key for key, p in PLATFORMS.items() if not getattr(self.project, p["field"])]
        actions = [action(key, PLATFORMS[key]["name"]) for key in pending]
        if len(pending) == len(PLATFORMS):
            actions.append(action("skip_platforms", "Skip for now", "secondary"))
        else:
            actions.append(action("finish_setup", "Finish setup", "secondary"))
        self._reply(intro, actions)

    def _awaiting_actions(self, key, with_help=True):
        actions = []
        if with_help:
            actions.append(action(PLATFORMS[key]["help_action"], "Help me find it", "secondary"))
        actions.append(action("skip_platforms", "Skip for now", "secondary"))
        return actions

    def _ask_platform(self, key):
        self._set_state(PLATFORMS[key]["state"])
        self._reply(PLATFORMS[key]["ask"], self._awaiting_actions(key))

    def _platform_help(self, key):
        self._reply(PLATFORMS[key]["help"], self._awaiting_actions(key, with_help=False))

    def _finish(self):
        self._set_state(FINISHED)
        self._reply(
            "Perfect! Your basic setup is ready. Now I'll generate the script you need to install on your site.",
            [action("show_script", "Show Script")]
        )

    def _show_script(self):
        self._reply(codegen.installation_instructions(self.project.gtm_id),
                    [action("complete", "Done")])

    def _complete(self):
        self._set_state(COMPLETE)
        feed.log_event(self.user.id, f"Setup wizard completed for '{self.project.name}'", self.project.id)
        self._reply("All set! You can come back any time to adjust the configuration.")

    # ------------------------------------------------------------------
    # Free text
    # ------------------------------------------------------------------
    def _on_text(self, text):
        if self.state == AWAITING_GTM_ID:
            self._receive_gtm_id(text)
        elif self.state in AWAITING_PLATFORM:
            self._receive_platform_id(AWAITING_PLATFORM[self.state], text)
        else:
            self._chat(text)

    def _receive_gtm_id(self, text):
        gtm_id = tracking_ids.clean("gtm_id", text)
        if not gtm_id:
            self._reply(
                f"That doesn't look like a GTM container ID (format: {tracking_ids.example('gtm_id')}). "
                "Could you check it?",
                self.offered
            )
            return
        self.project.gtm_id = gtm_id
        feed.log_event(self.user.id, f"GTM container {gtm_id} linked to '{self.project.name}'", self.project.id)
        self._reply(f"Saved! I'll use the container {gtm_id}.")
        self._platform_menu("Now let's set up your marketing platforms. Which platforms do you advertise on?")

    def _receive_platform_id(self, key, text):
        platform = PLATFORMS[key]
        value = tracking_ids.clean(platform["field"], text)
        if not value:
            self._reply(
                f"That doesn't look like a valid {platform['name']} ID "
                f"(format: {tracking_ids.example(platform['field'])}). Could you check it?",
                self.offered
            )
            return

        setattr(self.project, platform["field"], value)
        feed.log_event(self.user.id, f"{platform['name']} ID saved for '{self.project.name}'", self.project.id)
        self._reply(f"Saved your {platform['name']} ID: {value}.")
        self._platform_menu("Any other platform you advertise on?")

    def _chat(self, text):
        history = memory.to_llm_messages(memory.get_history(self.user.id, self.project.id, CHANNEL, limit=20)[:-1])
        try:
            reply = gemini.send_chat_message(text, history)
        except gemini.GeminiError as e:
            logger.error("Wizard chat reply failed: %s", e)
            reply = prompt.CHAT_FALLBACK_REPLY
        self._reply(reply, self.offered)
