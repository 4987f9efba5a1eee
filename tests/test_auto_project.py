import json

import pytest

import auto_project
import gemini
import site_scanner
from activity import feed
from models import db, Project

ANALYSIS = {
    "businessType": "ecommerce",
    "platforms": ["Shopify"],
    "recommendedEvents": [{"name": "purchase", "description": "Purchase completed"}],
}

GTM_CONFIG = {
    "containerConfig": {"containerName": "Acme", "containerId": "GTM-ACME123"},
    "tags": [
        {"name": "GA4 Config", "type": "GA4", "config": {"measurementId": "G-XXXXXXXXXX"}},
        {"name": "Meta", "type": "Meta Pixel", "config": {"pixelId": "123456789012345"}},
        {"name": "Ads", "type": "Google Ads", "config": {"conversionId": "AW-123456789"}},
    ],
}


@pytest.fixture
def fake_pipeline(monkeypatch):
    calls = {"gtm": 0, "codes": 0}

    def gtm_config(data):
        calls["gtm"] += 1
        calls["gtm_input"] = data
        return GTM_CONFIG

    def codes(config, name):
        calls["codes"] += 1
        return {"gtmSnippet": "<script></script>"}

    monkeypatch.setattr(site_scanner, "scan_for_tags", lambda url: calls.get("tags", []))
    monkeypatch.setattr(gemini, "analyze_website", lambda url: "raw analysis")
    monkeypatch.setattr(gemini, "extract_structured_data", lambda raw, url: dict(ANALYSIS))
    monkeypatch.setattr(gemini, "generate_gtm_configuration", gtm_config)
    monkeypatch.setattr(gemini, "generate_implementation_codes", codes)
    return calls


def test_extract_platform_ids_drops_placeholders():
    ids = auto_project.extract_platform_ids(GTM_CONFIG)
    assert ids == {
        "gtm_id": "GTM-ACME123",
        "meta_pixel_id": "123456789012345",
        "ga4_measurement_id": None,
        "google_ads_id": "AW-123456789",
    }


def test_extract_platform_ids_handles_missing_config():
    assert auto_project.extract_platform_ids(None) == {
        "gtm_id": None,
        "meta_pixel_id": None,
        "ga4_measurement_id": None,
        "google_ads_id": None,
    }


def test_auto_create_without_existing_gtm(user, fake_pipeline):
    result = auto_project.auto_create_project(user, "Acme", "https://acme.example", selected_platforms=["meta"])

    assert result["status"] == "success"
    assert result["hasExistingGTM"] is False
    assert result["gtmConfig"] == GTM_CONFIG
    assert result["implementationCodes"] == {"gtmSnippet": "<script></script>"}
    assert fake_pipeline["gtm_input"]["projectName"] == "Acme"
    assert fake_pipeline["gtm_input"]["businessType"] == "ecommerce"

    project = db.session.get(Project, result["project"]["id"])
    assert project.gtm_id == "GTM-ACME123"
    assert project.meta_pixel_id == "123456789012345"
    assert project.ga4_measurement_id is None
    assert project.google_ads_id == "AW-123456789"
    assert project.conversion_events == [
        {"id": "purchase", "name": "purchase", "description": "Purchase completed", "type": "custom"},
    ]
    assert project.business_type == "ecommerce"
    assert project.detected_platforms == ["Shopify"]
    assert project.selected_platforms == ["meta"]
    assert feed.recent(user.id)[0]["project_id"] == project.id


def test_recommended_events_are_normalized(user, fake_pipeline, monkeypatch):
    analysis = dict(ANALYSIS, recommendedEvents=["purchase", "Lead Form", 42, {"foo": 1}, {"name": "Add to cart", "type": "weird"}])
    monkeypatch.setattr(gemini, "extract_structured_data", lambda raw, url: analysis)

    result = auto_project.auto_create_project(user, "Acme", "https://acme.example")

    project = db.session.get(Project, result["project"]["id"])
    assert project.conversion_events == [
        {"id": "purchase", "name": "purchase", "description": "", "type": "custom"},
        {"id": "lead_form", "name": "Lead Form", "description": "", "type": "custom"},
        {"id": "add_to_cart", "name": "Add to cart", "description": "", "type": "custom"},
    ]


def test_non_list_recommended_events_store_nothing(user, fake_pipeline, monkeypatch):
    analysis = dict(ANALYSIS, recommendedEvents="purchase, lead", businessType=["ecommerce"])
    monkeypatch.setattr(gemini, "extract_structured_data", lambda raw, url: analysis)

    result = auto_project.auto_create_project(user, "Acme", "https://acme.example")

    project = db.session.get(Project, result["project"]["id"])
    assert project.conversion_events == []
    assert project.business_type is None


def test_existing_gtm_skips_configuration(user, fake_pipeline):
    fake_pipeline["tags"] = ["Google Tag Manager"]

    result = auto_project.auto_create_project(user, "Acme", "https://acme.example")

    assert result["hasExistingGTM"] is True
    assert result["gtmConfig"] is None
    assert result["implementationCodes"] is None
    assert fake_pipeline["gtm"] == 0
    assert fake_pipeline["codes"] == 0
    project = db.session.get(Project, result["project"]["id"])
    assert project.gtm_id is None
    assert project.existing_tags == ["Google Tag Manager"]


def test_force_create_gtm_overrides_existing(user, fake_pipeline):
    fake_pipeline["tags"] = ["Google Tag Manager"]

    result = auto_project.auto_create_project(user, "Acme", "https://acme.example", force_create_gtm=True)

    assert fake_pipeline["gtm"] == 1
    assert result["gtmConfig"] == GTM_CONFIG


def test_progress_events_in_order(user, fake_pipeline):
    events = list(auto_project.run_auto_create(user, "Acme", "https://acme.example"))
    steps = [e["step"] for e in events if e["status"] == "step"]

    assert steps[0] == "scan"
    assert steps.index("analyze") < steps.index("gtm") < steps.index("persist") < steps.index("codes")
    assert events[-1]["status"] == "complete"


def test_analysis_failure_aborts(user, fake_pipeline, monkeypatch):
    def fail(url):
        raise gemini.GeminiError("Gemini API error: down")

    monkeypatch.setattr(gemini, "analyze_website", fail)

    with pytest.raises(gemini.GeminiError):
        auto_project.auto_create_project(user, "Acme", "https://acme.example")
    assert Project.query.count() == 0


def test_stream_reports_fatal(user, fake_pipeline, monkeypatch):
    def fail(url):
        raise gemini.GeminiError("Gemini API error: down")

    monkeypatch.setattr(gemini, "analyze_website", fail)

    lines = [json.loads(line) for line in auto_project.auto_create_stream(user, "Acme", "https://acme.example")]
    assert lines[-1] == {"status": "fatal", "message": "Gemini API error: down"}
