import pytest

import google_ads
from conftest import FakeResponse


def test_normalize_customer_id():
    assert google_ads.normalize_customer_id("123-456-7890") == "1234567890"


def test_conversion_action_payload():
    payload = google_ads.conversion_action_payload("Purchase")
    assert payload["type"] == "WEBPAGE"
    assert payload["status"] == "ENABLED"
    assert payload["category"] == "DEFAULT"
    assert payload["valueSettings"] == {"defaultValue": 0, "alwaysUseDefaultValue": True}
    assert payload["countingType"] == "ONE_PER_CLICK"
    assert payload["clickThroughLookbackWindowDays"] == 30


def test_requires_developer_token(monkeypatch):
    monkeypatch.delenv("GOOGLE_ADS_DEVELOPER_TOKEN", raising=False)
    with pytest.raises(google_ads.GoogleAdsError):
        google_ads.create_conversion_action("ya29.token", "123-456-7890", "Purchase")


def test_create_conversion_action(monkeypatch):
    monkeypatch.setenv("GOOGLE_ADS_DEVELOPER_TOKEN", "dev-token")
    monkeypatch.delenv("GOOGLE_ADS_LOGIN_CUSTOMER_ID", raising=False)
    seen = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        seen.update(url=url, headers=headers, json=json)
        return FakeResponse(200, {"results": [{"resourceName": "customers/1234567890/conversionActions/1"}]})

    monkeypatch.setattr(google_ads.requests, "post", fake_post)
    result = google_ads.create_conversion_action("ya29.token", "123-456-7890", "Purchase")

    assert result["results"][0]["resourceName"].endswith("conversionActions/1")
    assert seen["url"].endswith("/customers/1234567890/conversionActions:mutate")
    assert seen["headers"]["developer-token"] == "dev-token"
    assert seen["headers"]["Authorization"] == "Bearer ya29.token"
    assert "login-customer-id" not in seen["headers"]
    assert seen["json"]["operations"][0]["create"]["name"] == "Purchase"


def test_api_error_message_is_surfaced(monkeypatch):
    monkeypatch.setenv("GOOGLE_ADS_DEVELOPER_TOKEN", "dev-token")
    error = {"error": {"message": "Request contains an invalid argument.",
                       "details": [{"errors": [{"message": "Duplicate conversion action name"}]}]}}
    monkeypatch.setattr(google_ads.requests, "post", lambda *a, **kw: FakeResponse(400, error))

    with pytest.raises(google_ads.GoogleAdsError, match="Duplicate conversion action name"):
        google_ads.create_conversion_action("ya29.token", "1234567890", "Purchase")
