import itertools

import pytest

import stape
from conftest import FakeResponse, FakeSession
from models import Project


def stape_session(fail_suffixes=()):
    ids = itertools.count(1)

    def created(url, body):
        if any(url.endswith(s) for s in fail_suffixes):
            return FakeResponse(500, {"message": "boom"})
        return FakeResponse(201, {"id": f"id-{next(ids)}", "name": body["name"]})

    return FakeSession({
        ("POST", "/triggers"): created,
        ("POST", "/variables"): created,
        ("POST", "/tags"): created,
        ("POST", "/publish"): lambda url, body: (
            FakeResponse(500, {"message": "publish failed"}) if "/publish" in fail_suffixes
            else FakeResponse(200, {"status": "published"})
        ),
        ("GET", "/containers"): FakeResponse(200, [{"id": "c1"}]),
    })


def make_api(session):
    return stape.StapeAPI(api_key="stape-key", base_url="https://stape.test/v1/", session=session)


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.delenv("STAPE_API_KEY", raising=False)
    with pytest.raises(stape.StapeError):
        stape.StapeAPI()


def test_request_errors_raise_stape_error():
    api = make_api(FakeSession({("GET", "/containers"): FakeResponse(401, {"message": "Invalid key"})}))
    with pytest.raises(stape.StapeError, match="Invalid key"):
        api.list_containers()


def test_list_containers():
    session = stape_session()
    assert make_api(session).list_containers() == [{"id": "c1"}]
    assert session.calls[0][1] == "https://stape.test/v1/containers"


def test_configure_custom_domain():
    session = FakeSession({
        ("POST", "/containers/c1/custom-domain"): FakeResponse(200, {"domain": "track.acme.example", "status": "pending"}),
    })
    result = make_api(session).configure_custom_domain("c1", "track.acme.example")

    assert result["domain"] == "track.acme.example"
    assert session.posted("/custom-domain") == [{"domain": "track.acme.example"}]


def test_ga4_preset_creates_trigger_variable_and_tag():
    session = stape_session()
    tag = make_api(session).configure_ga4("c1", "G-ABCDEF1234")

    assert tag["name"] == "Google Analytics 4 - Page View"
    assert session.posted("/triggers") == [{"name": "All Pages", "type": "page_view", "conditions": []}]
    assert session.posted("/variables") == [{"name": "GA4 Measurement ID", "type": "constant", "value": "G-ABCDEF1234"}]
    tag_body = session.posted("/tags")[0]
    assert tag_body["config"]["measurement_id"] == "{{GA4 Measurement ID}}"
    assert tag_body["triggers"] == ["id-1"]


def test_google_ads_preset_label_default():
    session = stape_session()
    project = Project(name="Acme", url="https://acme.example", stape_container_id="c1",
                      google_ads_id="AW-123456789", conversion_events=[])

    make_api(session).configure_project(project)

    values = [v["value"] for v in session.posted("/variables")]
    assert values == ["AW-123456789", "default"]


def test_configure_project_applies_presets_and_events():
    session = stape_session()
    project = Project(
        name="Acme", url="https://acme.example", stape_container_id="c1",
        ga4_measurement_id="G-ABCDEF1234", meta_pixel_id="123456789012345",
        conversion_events=[{"id": "purchase", "name": "Purchase", "parameters": {"currency": "BRL"}}],
    )

    result = make_api(session).configure_project(project)

    assert [t["platform"] for t in result["configuredTags"]] == ["Google Analytics 4", "Meta Pixel"]
    assert len(result["configuredEvents"]) == 1
    assert result["publishResult"] == {"status": "published"}
    assert result["containerId"] == "c1"
    trigger_names = [t["name"] for t in session.posted("/triggers")]
    assert "Purchase Trigger" in trigger_names
    assert "Purchase - Conversion Tracking" in [t["name"] for t in session.posted("/tags")]


def test_configure_project_skips_failures_and_tolerates_publish_error():
    session = stape_session(fail_suffixes=("/variables", "/publish"))
    project = Project(name="Acme", url="https://acme.example", stape_container_id="c1",
                      ga4_measurement_id="G-ABCDEF1234", conversion_events=[])

    result = make_api(session).configure_project(project)

    assert result["configuredTags"] == []
    assert result["publishResult"] is None


def test_default_domain():
    assert stape.default_domain("  Acme Store  Brasil ") == "acme-store-brasil.stape.io"
