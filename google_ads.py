import logging
import os

import requests

logger = logging.getLogger(__name__)

GOOGLE_ADS_API = os.getenv("GOOGLE_ADS_API_URL", "https://googleads.googleapis.com/v17")


class GoogleAdsError(Exception):
    pass


def normalize_customer_id(customer_id):
    """'123-456-7890' -> '1234567890'"""
    return str(customer_id).replace("-", "").strip()


def conversion_action_payload(name):
    return {
        "name": name,
        "type": "WEBPAGE",
        "status": "ENABLED",
        "category": "DEFAULT",
        "valueSettings": {
            "defaultValue": 0,
            "alwaysUseDefaultValue": True,
        },
        "countingType": "ONE_PER_CLICK",
        "clickThroughLookbackWindowDays": 30,
    }


def create_conversion_action(access_token, customer_id, conversion_name):
    developer_token = os.getenv("GOOGLE_ADS_DEVELOPER_TOKEN")
    if not developer_token:
        raise GoogleAdsError("Google Ads developer token is not configured.")

    cid = normalize_customer_id(customer_id)
    headers = {
        "Authorization": f"Bearer {access_token}",
        "developer-token": developer_token,
        "Content-Type": "application/json",
    }
    login_customer_id = os.getenv("GOOGLE_ADS_LOGIN_CUSTOMER_ID")
    if login_customer_id:
        headers["login-customer-id"] = normalize_customer_id(login_customer_id)

    response = requests.post(
        f"{GOOGLE_ADS_API}/customers/{cid}/conversionActions:mutate",
        headers=headers,
        json={"operations": [{"create": conversion_action_payload(conversion_name)}]},
        timeout=30
    )
    if not response.ok:
        try:
            error = response.json().get("error", {})
            details = error.get("details") or []
            errors = details[0].get("errors") if details else None
            message = errors[0].get("message") if errors else error.get("message")
        except (ValueError, AttributeError, IndexError):
            message = None
        logger.error("Google Ads API error for customer %s: %s", cid, message or response.text)
        raise GoogleAdsError(message or "Failed to create conversion action")

    return response.json()
