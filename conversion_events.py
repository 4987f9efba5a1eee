import re

EVENT_TYPES = ["page_view", "click", "form_submit", "purchase", "lead", "custom"]

EVENT_TEMPLATES = [
    {
        "id": "ecommerce",
        "name": "E-commerce",
        "description": "Essential events for online stores, focused on the purchase funnel.",
        "events": [
            {"id": "page_view", "name": "Page View", "type": "page_view", "enabled": True},
            {"id": "view_item", "name": "View Product", "type": "custom", "selector": ".product-view", "enabled": True},
            {"id": "add_to_cart", "name": "Add to Cart", "type": "custom", "selector": ".add-to-cart-btn", "enabled": True},
            {"id": "begin_checkout", "name": "Begin Checkout", "type": "custom", "selector": ".checkout-btn", "enabled": True},
            {"id": "purchase", "name": "Purchase", "type": "purchase", "value": 0, "enabled": True},
        ],
    },
    {
        "id": "lead_gen",
        "name": "Lead Generation",
        "description": "Events that optimize contact capture on sites and landing pages.",
        "events": [
            {"id": "page_view", "name": "Page View", "type": "page_view", "enabled": True},
            {"id": "form_submit", "name": "Contact Form Submit", "type": "form_submit", "selector": 'form[name="contact"]', "enabled": True},
            {"id": "lead", "name": "Lead (Newsletter)", "type": "lead", "selector": 'form[name="newsletter"]', "enabled": True},
            {"id": "whatsapp_click", "name": "WhatsApp Click", "type": "click", "selector": 'a[href*="wa.me"]', "enabled": True},
        ],
    },
    {
        "id": "saas",
        "name": "SaaS",
        "description": "Events that track engagement and conversions on SaaS platforms.",
        "events": [
            {"id": "page_view", "name": "Page View", "type": "page_view", "enabled": True},
            {"id": "sign_up", "name": "Platform Sign Up", "type": "custom", "selector": ".signup-btn", "enabled": True},
            {"id": "login", "name": "User Login", "type": "custom", "selector": ".login-btn", "enabled": True},
            {"id": "trial_start", "name": "Trial Start", "type": "lead", "selector": ".start-trial-btn", "enabled": True},
            {"id": "subscription", "name": "Paid Subscription", "type": "purchase", "value": 0, "enabled": True},
        ],
    },
]

BUSINESS_TYPE_CONFIGS = {
    "ecommerce": {
        "conversionEvents": [
            {"name": "purchase", "description": "Purchase completed"},
            {"name": "add_to_cart", "description": "Product added to cart"},
            {"name": "view_item", "description": "Product viewed"},
            {"name": "begin_checkout", "description": "Checkout started"},
        ],
    },
    "lead_generation": {
        "conversionEvents": [
            {"name": "lead", "description": "Lead generated"},
            {"name": "form_submit", "description": "Form submitted"},
            {"name": "phone_call", "description": "Phone call"},
            {"name": "whatsapp_click", "description": "WhatsApp click"},
        ],
    },
    "service": {
        "conversionEvents": [
            {"name": "booking", "description": "Booking made"},
            {"name": "contact", "description": "Contact made"},
            {"name": "quote_request", "description": "Quote requested"},
        ],
    },
}

# Keywords the LLM tends to use for each preset
_BUSINESS_KEYWORDS = [
    ("ecommerce", ["e-commerce", "ecommerce", "store", "shop", "loja", "retail"]),
    ("lead_generation", ["lead", "landing", "saas", "b2b", "institutional", "institucional"]),
    ("service", ["service", "serviço", "servico", "clinic", "agency", "consult"]),
]

EVENT_ID_RE = re.compile(r"^[a-z0-9_]+$")


def get_template(template_id):
    for template in EVENT_TEMPLATES:
        if template["id"] == template_id:
            return template
    return None


def events_for_business_type(business_type):
    """Preset conversion events for a free-form business type, [] if none match."""
    if not business_type:
        return []
    lowered = business_type.lower()
    for preset, keywords in _BUSINESS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return [dict(e, id=e["name"]) for e in BUSINESS_TYPE_CONFIGS[preset]["conversionEvents"]]
    return []


def slugify_event_id(name):
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return slug or "custom_event"


def validate_event(event):
    """Return (event, None) normalized, or (None, error)."""
    if not isinstance(event, dict):
        return None, "Event must be an object"

    name = (event.get("name") or "").strip()
    if not name:
        return None, "Event name is required"

    event_id = (event.get("id") or slugify_event_id(name)).strip()
    if not EVENT_ID_RE.match(event_id):
        return None, "Event id may only contain lowercase letters, digits and underscores"

    event_type = event.get("type", "custom")
    if event_type not in EVENT_TYPES:
        return None, f"Unknown event type: {event_type}"

    normalized = {
        "id": event_id,
        "name": name,
        "description": (event.get("description") or "").strip(),
        "type": event_type,
    }
    for optional in ("selector", "value", "parameters", "conditions", "trigger_type"):
        if optional in event:
            normalized[optional] = event[optional]
    return normalized, None


def normalize_events(raw_events):
    """
    Coerce a model-generated event list into valid events.
    Plain strings become named events, ids are slugified from the name,
    unknown types fall back to "custom" and anything else invalid is dropped.
    """
    events = []
    for raw in raw_events if isinstance(raw_events, list) else []:
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict):
            continue

        name = raw.get("name") if isinstance(raw.get("name"), str) else raw.get("id")
        if not isinstance(name, str) or not name.strip():
            continue
        event = dict(raw, name=name)
        event["id"] = slugify_event_id(raw["id"] if isinstance(raw.get("id"), str) else name)
        if not isinstance(event.get("description"), str):
            event.pop("description", None)
        if event.get("type") not in EVENT_TYPES:
            event["type"] = "custom"

        event, error = validate_event(event)
        if event:
            events.append(event)
    return merge_events([], events)


def merge_events(existing, new_events):
    """Append events whose id is not already present."""
    merged = list(existing or [])
    ids = {e.get("id") for e in merged}
    for event in new_events:
        if event["id"] not in ids:
            merged.append(event)
            ids.add(event["id"])
    return merged
