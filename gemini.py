"""
Tag Mage LLM access
-------------------
Talks to Google Gemini through its OpenAI-compatible endpoint, so the same
`openai` client drives chat replies, site analysis and JSON extraction.

Usage
-----
$ export GOOGLE_GEMINI_API_KEY="AIza……"
$ python gemini.py https://example.com
→ prints the tracking analysis for the site
"""

import json
import logging
import os
import re
import sys

from openai import OpenAI, OpenAIError

import prompt

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-pro")


class GeminiError(Exception):
    """Raised when the Gemini API call fails."""


# ------------------------------------------------------------------
# 1. OpenAI-compatible Gemini client
# ------------------------------------------------------------------
_client = None


def get_client():
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=os.getenv("GOOGLE_GEMINI_API_KEY"),
            base_url=GEMINI_BASE_URL
        )
    return _client


def _complete(messages, temperature=0.7, max_tokens=2048):
    try:
        response = get_client().chat.completions.create(
            model=GEMINI_MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=False
        )
        return response.choices[0].message.content or ""
    except OpenAIError as exc:
        logger.error("Gemini request failed: %s", exc)
        raise GeminiError(f"Gemini API error: {exc}") from exc


def generate_content(prompt_text, temperature=0.7):
    """Single-turn generation."""
    return _complete([{"role": "user", "content": prompt_text}], temperature=temperature)


def send_chat_message(message, history=None):
    """
    Reply to `message` as the tracking specialist.
    `history` is a list of {"role": "user"|"assistant", "content": str}.
    """
    messages = [
        {"role": "system", "content": prompt.SYSTEM_PROMPT},
        {"role": "assistant", "content": prompt.CHAT_GREETING},
    ]
    messages.extend(history or [])
    messages.append({"role": "user", "content": message})
    return _complete(messages, temperature=0.7, max_tokens=2048)


def analyze_website(url):
    return generate_content(prompt.ANALYZE_SITE_PROMPT.format(url=url))


def generate_tracking_plan(conversation_history):
    return generate_content(prompt.TRACKING_PLAN_PROMPT.format(history=conversation_history))


# ------------------------------------------------------------------
# 2. JSON helpers
# ------------------------------------------------------------------
def extract_json(text):
    """
    Pull the outermost JSON object out of a model reply.
    Returns None when there is no parsable object.
    """
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?", "", cleaned).rstrip("`").strip()

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if not match:
        return None

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def generate_json(prompt_text):
    """Generate and parse a JSON object; {} when the model or the parse fails."""
    try:
        return extract_json(generate_content(prompt_text, temperature=0.3)) or {}
    except GeminiError as exc:
        logger.warning("JSON generation failed: %s", exc)
        return {}


def extract_structured_data(analysis, url):
    return generate_json(prompt.STRUCTURED_DATA_PROMPT.format(analysis=analysis, url=url))


def generate_gtm_configuration(data):
    return generate_json(prompt.GTM_CONFIG_PROMPT.format(
        project_name=data.get("projectName"),
        url=data.get("url"),
        business_type=data.get("businessType"),
        conversion_elements=json.dumps(data.get("conversionElements") or [], ensure_ascii=False),
        platforms=json.dumps(data.get("platforms") or [], ensure_ascii=False),
        recommended_events=json.dumps(data.get("recommendedEvents") or [], ensure_ascii=False),
    ))


def generate_implementation_codes(gtm_config, project_name):
    return generate_json(prompt.IMPLEMENTATION_CODES_PROMPT.format(
        project_name=project_name,
        gtm_config=json.dumps(gtm_config or {}, ensure_ascii=False),
    ))


# ------------------------------------------------------------------
# 3. CLI Entry point
# ------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) > 1:
        site = sys.argv[1]
    else:
        site = input("Site URL: ").strip()

    if not site:
        sys.exit("No URL provided.")

    try:
        print(analyze_website(site))
    except GeminiError as e:
        sys.exit(f"Failed: {e}")
