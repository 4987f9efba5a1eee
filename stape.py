"""
Stape.io server-side containers.
Docs: https://docs.stape.io/

Uses the company (Tag Mage) API key; users never see it.
"""
import logging
import os
import re

import requests

logger = logging.getLogger(__name__)


class StapeError(Exception):
    pass


class StapeAPI:
    def __init__(self, api_key=None, base_url=None, session=None):
        self.api_key = api_key or os.getenv("STAPE_API_KEY", "")
        if not self.api_key:
            raise StapeError("STAPE_API_KEY is not configured")
        self.base_url = (base_url or os.getenv("STAPE_BASE_URL", "https://api.stape.io/v1")).rstrip("/")
        self.session = session or requests.Session()

    def request(self, endpoint, method="GET", payload=None):
        response = self.session.request(
            method,
            f"{self.base_url}{endpoint}",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=30
        )
        if not response.ok:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise StapeError(message or f"Stape API error: {response.status_code}")
        return response.json() if response.content else None

    # ===== CONTAINERS =====

    def list_containers(self):
        return self.request("/containers")

    def create_container(self, name, domain, description=None, custom_domain=None):
        payload = {"name": name, "domain": domain}
        if description:
            payload["description"] = description
        if custom_domain:
            payload["customDomain"] = custom_domain
        return self.request("/containers", "POST", payload)

    def configure_custom_domain(self, container_id, custom_domain):
        return self.request(f"/containers/{container_id}/custom-domain", "POST", {"domain": custom_domain})

    # ===== TAGS / TRIGGERS / VARIABLES =====

    def create_tag(self, container_id, name, tag_type, config, triggers):
        return self.request(f"/containers/{container_id}/tags", "POST", {
            "name": name,
            "type": tag_type,
            "config": config,
            "triggers": triggers,
        })

    def create_trigger(self, container_id, name, trigger_type, conditions=None):
        return self.request(f"/containers/{container_id}/triggers", "POST", {
            "name": name,
            "type": trigger_type,
            "conditions": conditions or [],
        })

    def create_variable(self, container_id, name, value, variable_type="constant"):
        return self.request(f"/containers/{container_id}/variables", "POST", {
            "name": name,
            "type": variable_type,
            "value": value,
        })

    def publish_container(self, container_id):
        return self.request(f"/containers/{container_id}/publish", "POST")

    # ===== PRESETS =====

    def _page_view_tag(self, container_id, var_name, value, tag_name, tag_type, config_key, event_name):
        trigger = self.create_trigger(container_id, "All Pages", "page_view")
        var = self.create_variable(container_id, var_name, value)
        return self.create_tag(container_id, tag_name, tag_type, {
            config_key: f"{{{{{var['name']}}}}}",
            "event_name": event_name,
            "parameters": {},
        }, [trigger["id"]])

    def configure_ga4(self, container_id, measurement_id):
        return self._page_view_tag(container_id, "GA4 Measurement ID", measurement_id,
                                   "Google Analytics 4 - Page View", "gtag", "measurement_id", "page_view")

    def configure_meta_pixel(self, container_id, pixel_id):
        return self._page_view_tag(container_id, "Meta Pixel ID", pixel_id,
                                   "Meta Pixel - Page View", "fbq", "pixel_id", "PageView")

    def configure_tiktok_pixel(self, container_id, pixel_id):
        return self._page_view_tag(container_id, "TikTok Pixel ID", pixel_id,
                                   "TikTok Pixel - Page View", "tiktok", "pixel_id", "PageView")

    def configure_linkedin_insight(self, container_id, partner_id):
        return self._page_view_tag(container_id, "LinkedIn Partner ID", partner_id,
                                   "LinkedIn Insight Tag - Page View", "linkedin", "partner_id", "PageView")

    def configure_google_ads(self, container_id, conversion_id, conversion_label):
        trigger = self.create_trigger(container_id, "All Pages", "page_view")
        id_var = self.create_variable(container_id, "Google Ads Conversion ID", conversion_id)
        label_var = self.create_variable(container_id, "Google Ads Conversion Label", conversion_label)
        return self.create_tag(container_id, "Google Ads - Conversion Tracking", "gtag", {
            "conversion_id": f"{{{{{id_var['name']}}}}}",
            "conversion_label": f"{{{{{label_var['name']}}}}}",
            "event_name": "page_view",
            "parameters": {},
        }, [trigger["id"]])

    def configure_conversion_event(self, container_id, event_name, event_config=None, trigger_type="custom_event"):
        event_config = event_config or {}
        trigger = self.create_trigger(container_id, f"{event_name} Trigger", trigger_type,
                                      event_config.get("conditions") or [])
        tag = self.create_tag(container_id, f"{event_name} - Conversion Tracking", "gtag", {
            "event_name": event_name,
            "parameters": event_config.get("parameters") or {},
        }, [trigger["id"]])
        return trigger, tag

    def configure_project(self, project):
        """
        Apply every preset the project has an ID for, plus its conversion events,
        then publish. A failing platform or event is logged and skipped.
        """
        container_id = project.stape_container_id
        configured_tags = []
        configured_events = []

        presets = [
            ("Google Analytics 4", project.ga4_measurement_id, self.configure_ga4),
            ("Meta Pixel", project.meta_pixel_id, self.configure_meta_pixel),
            ("TikTok Pixel", project.tiktok_pixel_id, self.configure_tiktok_pixel),
            ("LinkedIn Insight Tag", project.linkedin_insight_tag_id, self.configure_linkedin_insight),
        ]
        for platform, platform_id, configure in presets:
            if not platform_id:
                continue
            try:
                configured_tags.append({"platform": platform, "tag": configure(container_id, platform_id)})
            except (StapeError, requests.RequestException) as e:
                logger.error("Error configuring %s on Stape: %s", platform, e)

        if project.google_ads_id:
            try:
                tag = self.configure_google_ads(container_id, project.google_ads_id,
                                                project.google_ads_label or "default")
                configured_tags.append({"platform": "Google Ads", "tag": tag})
            except (StapeError, requests.RequestException) as e:
                logger.error("Error configuring Google Ads on Stape: %s", e)

        events = project.conversion_events if isinstance(project.conversion_events, list) else []
        for event in events:
            event_name = event.get("name") or event.get("id")
            try:
                trigger, tag = self.configure_conversion_event(
                    container_id,
                    event_name,
                    {"parameters": event.get("parameters") or {}, "conditions": event.get("conditions") or []},
                    event.get("trigger_type") or "custom_event",
                )
                configured_events.append({"event": event, "trigger": trigger, "tag": tag})
            except (StapeError, requests.RequestException) as e:
                logger.error("Error configuring event %s on Stape: %s", event_name, e)

        publish_result = None
        try:
            publish_result = self.publish_container(container_id)
        except (StapeError, requests.RequestException) as e:
            logger.error("Error publishing Stape container %s: %s", container_id, e)

        return {
            "configuredTags": configured_tags,
            "configuredEvents": configured_events,
            "publishResult": publish_result,
            "containerId": container_id,
        }


def default_domain(project_name):
    slug = re.sub(r"\s+", "-", project_name.strip().lower())
    return f"{slug}.stape.io"


def create_stape_api():
    return StapeAPI()
