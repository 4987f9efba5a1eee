import logging

import requests

import codegen

logger = logging.getLogger(__name__)

GTM_API = "https://www.googleapis.com/tagmanager/v2"
VERSION_NAME = "Tag Mage - Platform Tags Setup"

# OAuth scopes the dashboard requests when connecting a Google account
GTM_SCOPES = [
    "https://www.googleapis.com/auth/tagmanager.edit.containers",
    "https://www.googleapis.com/auth/tagmanager.edit.containerversions",
    "https://www.googleapis.com/auth/tagmanager.publish",
    "https://www.googleapis.com/auth/tagmanager.readonly",
    "https://www.googleapis.com/auth/adwords",
]


class GTMError(Exception):
    def __init__(self, message, status_code=500, code="GOOGLE_API_ERROR"):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


def get_session(access_token):
    """
    Requests session authenticated with the user's Google OAuth access token.
    """
    session = requests.Session()
    session.headers.update({
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    })
    return session


def _check(response):
    if response.ok:
        return response.json() if response.content else {}

    try:
        details = response.json().get("error", {}).get("message") or response.text
    except ValueError:
        details = response.text

    if response.status_code == 401:
        raise GTMError(details, 401, "TOKEN_EXPIRED")
    if response.status_code == 403:
        raise GTMError(details, 403, "INSUFFICIENT_PERMISSIONS")
    raise GTMError(details, response.status_code, "GOOGLE_API_ERROR")


def _get(session, path):
    return _check(session.get(f"{GTM_API}/{path}", timeout=30))


def _post(session, path, body=None):
    return _check(session.post(f"{GTM_API}/{path}", json=body or {}, timeout=30))


# ------------------------------------------------------------------
# Accounts & containers
# ------------------------------------------------------------------
def list_accounts(session):
    return _get(session, "accounts").get("account", [])


def list_containers(access_token):
    """
    Containers across every GTM account of the user.
    An account whose containers can't be listed is skipped.
    """
    session = get_session(access_token)
    accounts = list_accounts(session)
    containers = []

    for account in accounts:
        if not account.get("path"):
            continue
        try:
            data = _get(session, f"{account['path']}/containers")
        except GTMError as e:
            logger.error("Error listing containers of account %s: %s", account.get("name"), e)
            continue

        for c in data.get("container", []):
            containers.append({
                "accountId": account.get("accountId"),
                "accountName": account.get("name"),
                "containerId": c.get("containerId"),
                "publicId": c.get("publicId"),
                "name": c.get("name"),
                "path": c.get("path"),
            })

    logger.info("Found %d GTM containers", len(containers))
    return containers


def create_container(access_token, name, url):
    """
    Create a web container in the first GTM account, plus a default workspace.
    """
    session = get_session(access_token)
    accounts = list_accounts(session)
    if not accounts or not accounts[0].get("accountId"):
        raise GTMError("No GTM account found. Please create a Google Tag Manager account first.", 404, "NO_GTM_ACCOUNT")

    account_id = accounts[0]["accountId"]
    container = _post(session, f"accounts/{account_id}/containers", {
        "name": name,
        "usageContext": ["web"],
    })
    if not container.get("publicId"):
        raise GTMError("Failed to create GTM container.")

    _post(session, f"accounts/{account_id}/containers/{container['containerId']}/workspaces", {
        "name": f"Default Workspace for {url}",
    })
    logger.info("Created GTM container %s in account %s", container["publicId"], account_id)
    return container


def find_container(session, public_id):
    for account in list_accounts(session):
        if not account.get("path"):
            continue
        data = _get(session, f"{account['path']}/containers")
        for c in data.get("container", []):
            if c.get("publicId") == public_id:
                return c
    return None


def get_default_workspace(session, container_path):
    workspaces = _get(session, f"{container_path}/workspaces").get("workspace", [])
    return workspaces[0] if workspaces else None


# ------------------------------------------------------------------
# Workspace entities
# ------------------------------------------------------------------
def create_variable(session, workspace_path, name, value):
    return _post(session, f"{workspace_path}/variables", {
        "name": name,
        "type": "c", # constant
        "parameter": [{"key": "value", "type": "template", "value": value}],
    })


def create_trigger(session, workspace_path, name, trigger_type="pageview"):
    return _post(session, f"{workspace_path}/triggers", {"name": name, "type": trigger_type})


def create_tag(session, workspace_path, name, tag_type, parameters, trigger_id):
    body = {
        "name": name,
        "type": tag_type,
        "firingTriggerId": [trigger_id],
    }
    if parameters:
        body["parameter"] = parameters
    return _post(session, f"{workspace_path}/tags", body)


def create_html_tag(session, workspace_path, name, html, trigger_id):
    return create_tag(session, workspace_path, name, "html", [
        {"key": "html", "type": "template", "value": html},
        {"key": "supportDocumentWrite", "type": "boolean", "value": "false"},
    ], trigger_id)


def publish(session, workspace_path, version_name=VERSION_NAME):
    version = _post(session, f"{workspace_path}:create_version", {"name": version_name})
    version_path = version.get("containerVersion", {}).get("path")
    if not version_path:
        raise GTMError("Version creation returned no container version.")
    return _post(session, f"{version_path}:publish")


def configure_platform_tags(access_token, project):
    """
    Create tags for every platform ID set on the project and publish them.
    Returns {"configured": [platform names], "published": bool}.
    """
    session = get_session(access_token)

    container = find_container(session, project.gtm_id)
    if not container or not container.get("path"):
        raise GTMError("GTM container not found in user account.", 404, "CONTAINER_NOT_FOUND")

    workspace = get_default_workspace(session, container["path"])
    if not workspace or not workspace.get("path"):
        raise GTMError("Default GTM workspace not found.", 404, "WORKSPACE_NOT_FOUND")
    ws = workspace["path"]

    trigger = create_trigger(session, ws, "All Pages")
    trigger_id = trigger.get("triggerId")
    if not trigger_id:
        raise GTMError("Could not create the 'All Pages' trigger.")

    configured = []

    if project.meta_pixel_id:
        var = create_variable(session, ws, "Meta Pixel ID", project.meta_pixel_id)
        create_tag(session, ws, "Meta Pixel - Base Code", "fbp", [
            {"key": "pixelId", "type": "template", "value": f"{{{{{var['name']}}}}}"},
            {"key": "standardEvent", "type": "template", "value": "PAGE_VIEW"},
        ], trigger_id)
        configured.append("Meta Pixel")

    if project.ga4_measurement_id:
        var = create_variable(session, ws, "GA4 Measurement ID", project.ga4_measurement_id)
        create_tag(session, ws, "Google Tag - GA4 Configuration", "googtag", [
            {"key": "tagId", "type": "template", "value": f"{{{{{var['name']}}}}}"},
        ], trigger_id)
        configured.append("Google Analytics 4")

    if project.google_ads_id:
        # Conversion Linker needs no ID, only the trigger
        create_tag(session, ws, "Google Ads - Conversion Linker", "gclidw", None, trigger_id)
        configured.append("Google Ads")

    if project.tiktok_pixel_id:
        create_html_tag(session, ws, "TikTok Pixel - Base Code",
                        codegen.tiktok_pixel_snippet(project.tiktok_pixel_id), trigger_id)
        configured.append("TikTok Pixel")

    if project.linkedin_insight_tag_id:
        create_html_tag(session, ws, "LinkedIn Insight Tag",
                        codegen.linkedin_insight_snippet(project.linkedin_insight_tag_id), trigger_id)
        configured.append("LinkedIn Insight Tag")

    if not configured:
        return {"configured": [], "published": False}

    publish(session, ws)
    logger.info("Published GTM tags for %s: %s", project.gtm_id, ", ".join(configured))
    return {"configured": configured, "published": True}
