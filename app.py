import logging
import os
import secrets
from functools import wraps

import bleach
import click
import requests
from dotenv import load_dotenv
from flask import Flask, Response, g, jsonify, request, stream_with_context
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman

import auto_project
import codegen
import conversion_events
import gemini
import google_ads
import gtm_utils
import memory
import site_scanner
import stape
import tracking_ids
from activity import feed
from models import db, EDITABLE_FIELDS, Project, User, WizardSession
from prompt import CHAT_FALLBACK_REPLY
from wizard import SetupWizard, WizardError

load_dotenv()

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY") or os.urandom(24)

# ------------------------------------------------------------------
# Security Configuration
# ------------------------------------------------------------------
# Rate Limiting (RATELIMIT_ENABLED=false turns it off, e.g. for tests)
app.config["RATELIMIT_ENABLED"] = os.getenv("RATELIMIT_ENABLED", "true").lower() != "false"
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=["200 per day", "50 per hour"],
    storage_uri="memory://"
)

# Secure Headers. JSON-only API, nothing to load from anywhere.
csp = {
    'default-src': '\'none\'',
    'frame-ancestors': '\'none\'',
}
talisman = Talisman(app, content_security_policy=csp, force_https=False) # force_https=False for local dev

# ------------------------------------------------------------------
# Database Configuration
# ------------------------------------------------------------------
app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv("DATABASE_URL", "sqlite:///local_dev.db")
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
db.init_app(app)

# Create tables on startup
with app.app_context():
    db.create_all()


# ------------------------------------------------------------------
# Auth & helpers
# ------------------------------------------------------------------
def login_required(f):
    """Resolve `Authorization: Bearer <api_token>` into g.user."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return jsonify({"error": "Unauthorized: No auth header"}), 401

        token = auth_header[len("Bearer "):].strip() if auth_header.startswith("Bearer ") else ""
        user = User.query.filter_by(api_token=token).first() if token else None
        if not user:
            return jsonify({"error": "Unauthorized: Invalid token"}), 401

        g.user = user
        return f(*args, **kwargs)
    return decorated


def get_user_project(project_id):
    return Project.query.filter_by(id=project_id, user_id=g.user.id).first()


def clean_text(value):
    return bleach.clean(value.strip()) if isinstance(value, str) else value


def project_not_found():
    return jsonify({"error": "Project not found"}), 404


def gtm_error_response(e):
    return jsonify({"error": str(e), "code": e.code}), e.status_code


def apply_project_fields(project, data):
    """Copy editable fields from a request body. Returns an error message or None."""
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "selected_platforms":
            if not isinstance(value, list):
                return "selected_platforms must be a list"
            setattr(project, field, [clean_text(v) for v in value])
            continue
        if value in (None, ""):
            if field in ("name", "url"):
                return f"{field} cannot be empty"
            setattr(project, field, None)
            continue
        if not isinstance(value, str):
            return f"{field} must be a string"
        value = clean_text(value)
        if field in tracking_ids.FORMATS:
            cleaned = tracking_ids.clean(field, value)
            if not cleaned:
                return f"Invalid {field}, expected format {tracking_ids.example(field)}"
            value = cleaned
        if field == "url":
            value = site_scanner.normalize_url(value)
        setattr(project, field, value)
    return None


@app.route("/")
def index():
    return jsonify({"status": "ok", "service": "tagmage"})


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------
@app.route("/api/projects", methods=["GET"])
@login_required
def list_projects():
    projects = Project.query.filter_by(user_id=g.user.id).order_by(Project.created_at.desc(), Project.id.desc()).all()
    return jsonify([p.to_dict() for p in projects])


@app.route("/api/projects", methods=["POST"])
@login_required
def create_project():
    data = request.get_json(silent=True) or {}
    if not data.get("name") or not data.get("url"):
        return jsonify({"error": "name and url are required"}), 400

    project = Project(user_id=g.user.id, conversion_events=[], selected_platforms=[])
    error = apply_project_fields(project, data)
    if error:
        return jsonify({"error": error}), 400
    if project.business_type:
        project.conversion_events = conversion_events.events_for_business_type(project.business_type)

    db.session.add(project)
    db.session.commit()
    feed.log_event(g.user.id, f"Project '{project.name}' created", project.id)
    return jsonify(project.to_dict()), 201


@app.route("/api/projects/<int:project_id>", methods=["GET"])
@login_required
def get_project(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()
    return jsonify(project.to_dict())


@app.route("/api/projects/<int:project_id>", methods=["PATCH"])
@login_required
def update_project(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()

    data = request.get_json(silent=True) or {}
    error = apply_project_fields(project, data)
    if error:
        db.session.rollback()
        return jsonify({"error": error}), 400

    db.session.commit()
    feed.log_event(g.user.id, f"Project '{project.name}' updated", project.id)
    return jsonify(project.to_dict())


@app.route("/api/projects/<int:project_id>", methods=["DELETE"])
@login_required
def delete_project(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()

    name = project.name
    memory.clear_history(project.id)
    WizardSession.query.filter_by(project_id=project.id).delete()
    db.session.delete(project)
    db.session.commit()
    feed.log_event(g.user.id, f"Project '{name}' deleted")
    return jsonify({"status": "success"})


@app.route("/api/projects/<int:project_id>/status", methods=["GET"])
@login_required
def project_status(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()
    return jsonify({"id": project.id, "status": project.status})


@app.route("/api/dashboard/summary", methods=["GET"])
@login_required
def dashboard_summary():
    counts = {"ok": 0, "warning": 0, "attention": 0}
    projects = Project.query.filter_by(user_id=g.user.id).all()
    for project in projects:
        counts[project.status] += 1
    return jsonify({
        "total": len(projects),
        "byStatus": counts,
        "recentActivity": feed.recent(g.user.id),
    })


# ------------------------------------------------------------------
# Site scan & AI analysis
# ------------------------------------------------------------------
@app.route("/api/scan-url", methods=["POST"])
@limiter.limit("20 per minute")
def scan_url():
    data = request.get_json(silent=True) or {}
    url = data.get("url")
    if not url:
        return jsonify({"error": "URL is required"}), 400

    try:
        return jsonify(site_scanner.scan_for_ids(site_scanner.normalize_url(url)))
    except requests.RequestException as e:
        logger.error("Error scanning URL %s: %s", url, e)
        return jsonify({"error": "Failed to scan URL", "details": str(e)}), 500


@app.route("/api/analyze-site", methods=["POST"])
@limiter.limit("10 per minute")
def analyze_site():
    data = request.get_json(silent=True) or {}
    url = data.get("url")
    if not url:
        return jsonify({"error": "URL is required"}), 400

    try:
        raw_analysis = gemini.analyze_website(url)
        analysis = gemini.extract_structured_data(raw_analysis, url)
        return jsonify({
            "status": "success",
            "url": url,
            "analysis": analysis,
            "rawAnalysis": raw_analysis,
        })
    except gemini.GeminiError as e:
        logger.error("Error analyzing site %s: %s", url, e)
        return jsonify({"status": "error", "message": "Error analyzing site", "error": str(e)}), 500


@app.route("/api/generate-gtm", methods=["POST"])
@limiter.limit("10 per minute")
def generate_gtm():
    data = request.get_json(silent=True) or {}
    if not data.get("projectName") or not data.get("url"):
        return jsonify({"error": "projectName and url are required"}), 400

    gtm_config = gemini.generate_gtm_configuration({
        "projectName": clean_text(data["projectName"]),
        "url": data["url"],
        "businessType": clean_text(data.get("businessType")),
        "conversionElements": data.get("conversionElements") or [],
        "platforms": data.get("platforms") or [],
        "recommendedEvents": data.get("recommendedEvents") or [],
    })
    return jsonify({
        "status": "success",
        "projectName": data["projectName"],
        "gtmConfig": gtm_config,
    })


def _auto_create_args():
    data = request.get_json(silent=True) or {}
    project_name = clean_text(data.get("projectName"))
    url = data.get("url")
    if not project_name or not url:
        return None, "projectName and url are required"
    selected_platforms = data.get("selected_platforms", [])
    if not isinstance(selected_platforms, list):
        return None, "selected_platforms must be a list"
    return {
        "project_name": project_name,
        "url": site_scanner.normalize_url(url),
        "force_create_gtm": bool(data.get("forceCreateGTM", False)),
        "selected_platforms": [clean_text(p) for p in selected_platforms],
    }, None


@app.route("/api/auto-create-project", methods=["POST"])
@login_required
@limiter.limit("5 per minute")
def auto_create_project_route():
    args, error = _auto_create_args()
    if error:
        return jsonify({"error": error}), 400

    try:
        return jsonify(auto_project.auto_create_project(g.user, **args))
    except (auto_project.AutoCreateError, gemini.GeminiError) as e:
        logger.error("Automatic project creation failed: %s", e)
        return jsonify({"status": "error", "message": "Error creating project automatically", "error": str(e)}), 500


@app.route("/api/auto-create-project/stream", methods=["POST"])
@login_required
@limiter.limit("5 per minute")
def auto_create_project_stream():
    args, error = _auto_create_args()
    if error:
        return jsonify({"error": error}), 400

    return Response(
        stream_with_context(auto_project.auto_create_stream(g.user, **args)),
        mimetype="application/x-ndjson"
    )


# ------------------------------------------------------------------
# Chat
# ------------------------------------------------------------------
@app.route("/api/chat", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
def chat():
    data = request.get_json(silent=True) or {}
    messages = data.get("messages") or []
    if data.get("message"):
        messages = messages + [{"role": "user", "content": data["message"]}]

    last = messages[-1] if messages and isinstance(messages[-1], dict) else {}
    message = clean_text(last.get("content") or "")
    if not message:
        return jsonify({"error": "Message is required"}), 400

    project = None
    if data.get("projectId") is not None:
        project = get_user_project(data["projectId"])
        if not project:
            return project_not_found()

    if project:
        history = memory.to_llm_messages(memory.get_history(g.user.id, project.id, limit=20))
    else:
        history = [
            {"role": "assistant" if m.get("role") in ("assistant", "model") else "user", "content": m.get("content", "")}
            for m in messages[:-1] if isinstance(m, dict)
        ]

    fallback = False
    try:
        reply = gemini.send_chat_message(message, history)
    except gemini.GeminiError as e:
        logger.error("Chat reply failed: %s", e)
        reply = CHAT_FALLBACK_REPLY
        fallback = True

    if project:
        memory.save_message(g.user.id, project.id, memory.USER, message)
        memory.save_message(g.user.id, project.id, memory.MODEL, reply)

    return jsonify({"role": memory.MODEL, "content": reply, "fallback": fallback})


@app.route("/api/tracking-plan", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def tracking_plan():
    data = request.get_json(silent=True) or {}
    project = get_user_project(data.get("projectId"))
    if not project:
        return project_not_found()

    history = memory.get_chat_context(g.user.id, project.id)
    if not history:
        return jsonify({"error": "No conversation history for this project"}), 400

    try:
        plan = gemini.generate_tracking_plan(history)
    except gemini.GeminiError as e:
        logger.error("Tracking plan generation failed: %s", e)
        return jsonify({"status": "error", "message": "Error generating tracking plan", "error": str(e)}), 500
    return jsonify({"status": "success", "trackingPlan": plan})


# ------------------------------------------------------------------
# Setup wizard
# ------------------------------------------------------------------
@app.route("/api/projects/<int:project_id>/wizard", methods=["GET"])
@login_required
def wizard_state(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()
    return jsonify(SetupWizard(project, g.user).snapshot())


@app.route("/api/projects/<int:project_id>/wizard", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
def wizard_step(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()

    data = request.get_json(silent=True) or {}
    wizard = SetupWizard(project, g.user, provider_token=data.get("providerToken"))
    try:
        return jsonify(wizard.handle(action_id=data.get("action"), message=clean_text(data.get("message"))))
    except WizardError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "state": wizard.state}), 400


# ------------------------------------------------------------------
# Conversion events & code
# ------------------------------------------------------------------
@app.route("/api/event-templates", methods=["GET"])
def event_templates():
    return jsonify(conversion_events.EVENT_TEMPLATES)


@app.route("/api/projects/<int:project_id>/conversion-events", methods=["GET"])
@login_required
def list_conversion_events(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()
    return jsonify(project.conversion_events or [])


@app.route("/api/projects/<int:project_id>/conversion-events", methods=["POST"])
@login_required
def add_conversion_events(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()

    data = request.get_json(silent=True) or {}
    existing = project.conversion_events or []

    if data.get("template"):
        template = conversion_events.get_template(data["template"])
        if not template:
            return jsonify({"error": f"Unknown template: {data['template']}"}), 400
        new_events = [dict(e) for e in template["events"]]
    else:
        raw = data.get("event", data)
        if isinstance(raw, dict):
            raw = {k: clean_text(v) for k, v in raw.items()}
        event, error = conversion_events.validate_event(raw)
        if error:
            return jsonify({"error": error}), 400
        if any(e.get("id") == event["id"] for e in existing):
            return jsonify({"error": f"Event '{event['id']}' already exists"}), 409
        new_events = [event]

    project.conversion_events = conversion_events.merge_events(existing, new_events)
    db.session.commit()
    return jsonify(project.conversion_events), 201


@app.route("/api/projects/<int:project_id>/conversion-events/<event_id>", methods=["DELETE"])
@login_required
def delete_conversion_event(project_id, event_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()

    events = project.conversion_events or []
    remaining = [e for e in events if e.get("id") != event_id]
    if len(remaining) == len(events):
        return jsonify({"error": "Event not found"}), 404

    project.conversion_events = remaining
    db.session.commit()
    return jsonify(remaining)


@app.route("/api/projects/<int:project_id>/code", methods=["GET"])
@login_required
def project_code(project_id):
    project = get_user_project(project_id)
    if not project:
        return project_not_found()
    return jsonify(codegen.project_code_bundle(project))


# ------------------------------------------------------------------
# Google Tag Manager
# ------------------------------------------------------------------
@app.route("/api/gtm/list-containers", methods=["POST"])
@login_required
def gtm_list_containers():
    data = request.get_json(silent=True) or {}
    token = data.get("providerToken")
    if not token:
        return jsonify({"error": "Google provider token is required", "code": "MISSING_PROVIDER_TOKEN"}), 400

    try:
        return jsonify({"containers": gtm_utils.list_containers(token)})
    except gtm_utils.GTMError as e:
        return gtm_error_response(e)
    except requests.RequestException as e:
        logger.error("GTM request failed: %s", e)
        return jsonify({"error": str(e), "code": "GOOGLE_API_ERROR"}), 500


@app.route("/api/gtm/create-container", methods=["POST"])
@login_required
def gtm_create_container():
    data = request.get_json(silent=True) or {}
    token = data.get("providerToken")
    if not token:
        return jsonify({"error": "Google provider token is required", "code": "MISSING_PROVIDER_TOKEN"}), 400
    project = get_user_project(data.get("projectId"))
    if not project:
        return project_not_found()

    try:
        container = gtm_utils.create_container(token, project.name, project.url)
    except gtm_utils.GTMError as e:
        return gtm_error_response(e)
    except requests.RequestException as e:
        logger.error("GTM request failed: %s", e)
        return jsonify({"error": str(e), "code": "GOOGLE_API_ERROR"}), 500

    project.gtm_id = container["publicId"]
    db.session.commit()
    feed.log_event(g.user.id, f"GTM container {project.gtm_id} created for '{project.name}'", project.id)
    return jsonify({"status": "success", "container": container, "project": project.to_dict()})


@app.route("/api/gtm/configure-tags", methods=["POST"])
@login_required
@limiter.limit("5 per minute")
def gtm_configure_tags():
    data = request.get_json(silent=True) or {}
    token = data.get("providerToken")
    if not token:
        return jsonify({"error": "Google provider token is required", "code": "MISSING_PROVIDER_TOKEN"}), 400
    project = get_user_project(data.get("projectId"))
    if not project:
        return project_not_found()
    if not project.gtm_id:
        return jsonify({"error": "Project has no GTM container"}), 400

    try:
        result = gtm_utils.configure_platform_tags(token, project)
    except gtm_utils.GTMError as e:
        return gtm_error_response(e)
    except requests.RequestException as e:
        logger.error("GTM request failed: %s", e)
        return jsonify({"error": str(e), "code": "GOOGLE_API_ERROR"}), 500

    if result["published"]:
        feed.log_event(g.user.id, f"GTM tags published for '{project.name}': {', '.join(result['configured'])}", project.id)
    return jsonify({"status": "success", **result})


# ------------------------------------------------------------------
# Stape (server-side)
# ------------------------------------------------------------------
@app.route("/api/stape/list-containers", methods=["POST"])
@login_required
def stape_list_containers():
    try:
        return jsonify({"containers": stape.create_stape_api().list_containers()})
    except (stape.StapeError, requests.RequestException) as e:
        logger.error("Error listing Stape containers: %s", e)
        return jsonify({"error": str(e)}), 500


@app.route("/api/stape/create-container", methods=["POST"])
@login_required
def stape_create_container():
    data = request.get_json(silent=True) or {}
    project = get_user_project(data.get("projectId"))
    if not project:
        return project_not_found()
    if project.stape_container_id:
        return jsonify({"error": "Project already has a server-side container"}), 400

    custom_domain = clean_text(data.get("customDomain")) or None
    domain = stape.default_domain(project.name)
    try:
        api = stape.create_stape_api()
        container = api.create_container(
            project.name,
            domain,
            description=f"Server-side container for {project.url}",
            custom_domain=custom_domain
        ) or {}
    except (stape.StapeError, requests.RequestException) as e:
        logger.error("Error creating Stape container: %s", e)
        return jsonify({"error": str(e)}), 500

    final_domain = container.get("domain") or domain
    if custom_domain and container.get("id"):
        try:
            result = api.configure_custom_domain(container["id"], custom_domain) or {}
            final_domain = result.get("domain") or custom_domain
        except (stape.StapeError, requests.RequestException) as e:
            # container stays on its default domain
            logger.warning("Error configuring custom domain %s: %s", custom_domain, e)

    project.stape_container_id = container.get("id")
    project.stape_domain = final_domain
    project.stape_configured = False
    db.session.commit()
    feed.log_event(g.user.id, f"Server-side container created for '{project.name}'", project.id)
    return jsonify({"status": "success", "container": container, "project": project.to_dict()})


@app.route("/api/stape/configure-tags", methods=["POST"])
@login_required
@limiter.limit("5 per minute")
def stape_configure_tags():
    data = request.get_json(silent=True) or {}
    project = get_user_project(data.get("projectId"))
    if not project:
        return project_not_found()
    if not project.stape_container_id:
        return jsonify({"error": "Project has no server-side container"}), 400

    try:
        result = stape.create_stape_api().configure_project(project)
    except stape.StapeError as e:
        logger.error("Error configuring Stape container: %s", e)
        return jsonify({"error": str(e)}), 500

    project.stape_configured = True
    db.session.commit()
    feed.log_event(g.user.id, f"Server-side tags configured for '{project.name}'", project.id)
    return jsonify({"status": "success", **result})


# ------------------------------------------------------------------
# Google Ads
# ------------------------------------------------------------------
@app.route("/api/google-ads/create-conversion", methods=["POST"])
@login_required
def google_ads_create_conversion():
    data = request.get_json(silent=True) or {}
    token = data.get("providerToken")
    if not token:
        return jsonify({"error": "Google provider token is required", "code": "MISSING_PROVIDER_TOKEN"}), 400

    project = None
    if data.get("projectId") is not None:
        project = get_user_project(data["projectId"])
        if not project:
            return project_not_found()

    customer_id = data.get("customerId") or (project.google_ads_customer_id if project else None)
    conversion_name = clean_text(data.get("conversionName"))
    if not customer_id or not conversion_name:
        return jsonify({"error": "customerId and conversionName are required"}), 400

    try:
        result = google_ads.create_conversion_action(token, customer_id, conversion_name)
    except (google_ads.GoogleAdsError, requests.RequestException) as e:
        return jsonify({"error": str(e)}), 500

    if project:
        feed.log_event(g.user.id, f"Google Ads conversion '{conversion_name}' created for '{project.name}'", project.id)
    return jsonify({"status": "success", "result": result})


# ------------------------------------------------------------------
# Operator CLI
# ------------------------------------------------------------------
@app.cli.command("create-user")
@click.argument("email")
@click.option("--plan", default="free", help="free or pro")
def create_user(email, plan):
    """Create a user and print its API token."""
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f"User {email} already exists")
    user = User(email=email, api_token=secrets.token_urlsafe(32), plan=plan)
    db.session.add(user)
    db.session.commit()
    click.echo(user.api_token)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True)
