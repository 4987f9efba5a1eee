import os

ASSISTANT_LANGUAGE = os.getenv("ASSISTANT_LANGUAGE", "Brazilian Portuguese")

SYSTEM_PROMPT = f"""
You are an expert in Google Tag Manager (GTM), Google Analytics 4 (GA4) and digital
tracking with more than 10 years of experience.

Your mission is to help users set up complete tracking for their websites through a
natural conversation.

IMPORTANT RULES:
1. Always answer in {ASSISTANT_LANGUAGE}.
2. Be friendly and didactic, but professional.
3. Ask specific questions to understand the business.
4. When you have enough information, provide a structured tracking plan.
5. Focus on conversions and business goals, not only on technology.

INFORMATION YOU NEED TO COLLECT:
- Type of site (e-commerce, institutional, blog, SaaS, etc.)
- Main conversions / goals
- Ad platforms in use (Google Ads, Meta, TikTok, etc.)
- Site URL (for analysis)
- Important forms and CTAs
- Conversion funnel

WHEN YOU HAVE ENOUGH INFORMATION, PROVIDE:
1. Project summary
2. List of events to track
3. Recommended GTM settings
4. Implementation code
5. Next steps

Keep the conversation fluid and natural.
"""

CHAT_GREETING = (
    "Got it! I am your tracking specialist. I will help you set up complete tracking "
    "for your website. To start, what is this project's website about?"
)

CHAT_FALLBACK_REPLY = (
    "Sorry, I am having some technical difficulties right now. "
    "Could you try again in a few seconds?"
)

ANALYZE_SITE_PROMPT = """Analyze the website {url} and give me:
1. The type of business
2. The main conversion elements found
3. Forms and CTAs detected
4. Tracking recommendations specific to this site

Be specific and practical."""

TRACKING_PLAN_PROMPT = """Based on the conversation below, produce a complete tracking plan:

{history}

Provide:
1. PROJECT SUMMARY
2. EVENTS TO TRACK (with description)
3. RECOMMENDED GTM SETTINGS
4. IMPLEMENTATION CODE
5. NEXT STEPS

Be detailed and practical."""

STRUCTURED_DATA_PROMPT = """Based on the analysis below, extract the information as structured JSON:

ANALYSIS:
{analysis}

URL: {url}

Return ONLY a valid JSON object with this structure:
{{
  "businessType": "type of business (e-commerce, SaaS, blog, etc.)",
  "conversionElements": [
    {{"type": "form|button|link|purchase", "description": "element description", "selector": "CSS selector if possible"}}
  ],
  "platforms": ["Google Ads", "Meta Ads", "TikTok"],
  "recommendedEvents": [
    {{"name": "event_name", "description": "description", "trigger": "when to fire"}}
  ],
  "gtmRecommendations": {{
    "triggers": ["recommended triggers"],
    "tags": ["recommended tags"],
    "variables": ["recommended variables"]
  }}
}}"""

GTM_CONFIG_PROMPT = """Generate a complete Google Tag Manager configuration for the project:

PROJECT: {project_name}
URL: {url}
BUSINESS TYPE: {business_type}
CONVERSION ELEMENTS: {conversion_elements}
PLATFORMS: {platforms}
RECOMMENDED EVENTS: {recommended_events}

Return ONLY a JSON object with:
{{
  "containerConfig": {{"containerName": "container name", "containerId": "GTM-XXXXXXX", "description": "container description"}},
  "triggers": [{{"name": "trigger name", "type": "Click|Page View|Custom Event", "conditions": ["conditions"], "description": "description"}}],
  "tags": [{{"name": "tag name", "type": "GA4|Google Ads|Meta Pixel", "trigger": "trigger name", "config": {{"measurementId": "G-XXXXXXXXXX", "pixelId": "", "conversionId": "", "eventName": "event", "parameters": {{}}}}}}],
  "variables": [{{"name": "variable name", "type": "Data Layer|Built-in|Custom", "value": "value"}}]
}}

Be specific and practical."""

IMPLEMENTATION_CODES_PROMPT = """Generate implementation code for the project {project_name}:

GTM CONFIG: {gtm_config}

Return ONLY a JSON object with:
{{
  "gtmSnippet": "<!-- Google Tag Manager -->...",
  "dataLayer": "window.dataLayer = window.dataLayer || [];...",
  "customEvents": ["gtag('event', 'purchase', {{...}});"],
  "instructions": "Implementation instructions"
}}"""
