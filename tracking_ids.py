import re

# Formats users type in / LLMs produce for each platform
FORMATS = {
    "gtm_id": (re.compile(r"^GTM-[A-Z0-9]{4,}$"), "GTM-XXXXXXX"),
    "ga4_measurement_id": (re.compile(r"^G-[A-Z0-9]{6,}$"), "G-XXXXXXXXXX"),
    "google_ads_id": (re.compile(r"^AW-\d{6,}$"), "AW-000000000"),
    "google_ads_customer_id": (re.compile(r"^\d{3}-\d{3}-\d{4}$"), "000-000-0000"),
    "meta_pixel_id": (re.compile(r"^\d{15,16}$"), "0000000000000000"),
    "tiktok_pixel_id": (re.compile(r"^C[A-Z0-9]{17,}$"), "C00000000000000000"),
    "linkedin_insight_tag_id": (re.compile(r"^\d{5,10}$"), "0000000"),
}


def is_placeholder(value):
    """'GTM-XXXXXXX', 'G-XXXXXXXXXX', '0000000000000000' and friends."""
    body = value.split("-", 1)[-1].replace("-", "")
    return bool(body) and (set(body.upper()) <= {"X"} or set(body) <= {"0"})


def clean(field, value):
    """Normalized value when it matches the field's format and isn't a placeholder, else None."""
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if field not in ("google_ads_customer_id",):
        value = value.upper()
    pattern, _ = FORMATS[field]
    if not pattern.match(value) or is_placeholder(value):
        return None
    return value


def example(field):
    return FORMATS[field][1]
