import logging
import re

import requests

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
}

# Tag name -> patterns, checked in this order
TAG_PATTERNS = [
    ("Google Tag Manager", [r"gtm\.js", r"googletagmanager\.com/gtm\.js"]),
    ("Google Analytics (GA4)", [r"googletagmanager\.com/gtag/js\?id=G-", r"gtag\('config', 'G-"]),
    ("Google Ads", [r"googletagmanager\.com/gtag/js\?id=AW-", r"gtag\('config', 'AW-"]),
    ("Meta Pixel (Facebook)", [r"connect\.facebook\.net/[a-z_A-Z]+/fbevents\.js", r"fbq\('init'"]),
    ("TikTok Pixel", [r"analytics\.tiktok\.com/i18n/pixel/events\.js", r"analytics\.tiktok\.com/gtm/tiktok-pixel\.js", r"ttq\.init", r"ttq\.load"]),
    ("LinkedIn Insight Tag", [r"snap\.licdn\.com/li\.lms-analytics/insight\.min\.js"]),
]

GTM_ID_RE = re.compile(r"GTM-[A-Z0-9]{4,}")
GA4_ID_RE = re.compile(r"G-[A-Z0-9]{10}")
META_PIXEL_ID_RE = re.compile(r"facebook\.com/tr\?id=(\d{15,})&")
TIKTOK_PIXEL_ID_RE = re.compile(r"ttq\.load\(\s*['\"]([A-Z0-9]{15,})['\"]")
LINKEDIN_PARTNER_ID_RE = re.compile(r"_linkedin_partner_id\s*=\s*['\"](\d+)['\"]")


def normalize_url(url):
    """Make sure the URL has a protocol."""
    url = url.strip()
    return url if url.startswith("http") else f"https://{url}"


def fetch_html(url, timeout=15):
    resp = requests.get(normalize_url(url), headers=HEADERS, timeout=timeout)
    resp.raise_for_status()
    return resp.text


def _unique(values):
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def detect_tags(html):
    """Names of the known tracking tags present in the HTML."""
    found = []
    for tag_name, patterns in TAG_PATTERNS:
        if any(re.search(pattern, html) for pattern in patterns):
            found.append(tag_name)
    return found


def find_tracking_ids(html):
    return {
        "gtmIds": _unique(GTM_ID_RE.findall(html)),
        "metaPixelIds": _unique(META_PIXEL_ID_RE.findall(html)),
        "ga4Ids": _unique(GA4_ID_RE.findall(html)),
        "tiktokPixelIds": _unique(TIKTOK_PIXEL_ID_RE.findall(html)),
        "linkedinPartnerIds": _unique(LINKEDIN_PARTNER_ID_RE.findall(html)),
    }


def scan_for_tags(url):
    """
    Scan a page for known tracking tags.
    Returns [] when the page can't be fetched so the calling flow continues.
    """
    try:
        html = fetch_html(url)
    except requests.RequestException as e:
        logger.error("Error scanning URL %s: %s", url, e)
        return []
    return detect_tags(html)


def scan_for_ids(url):
    """Tracking IDs present on the page. Fetch errors propagate."""
    return find_tracking_ids(fetch_html(url))


def has_gtm(tags):
    return any("gtm" in tag.lower() or "google tag manager" in tag.lower() for tag in tags)
