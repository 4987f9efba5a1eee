import pytest

import gtm_utils
from conftest import FakeResponse, FakeSession
from models import Project

ACCOUNTS = FakeResponse(200, {"account": [
    {"accountId": "1", "name": "Acme", "path": "accounts/1"},
    {"accountId": "2", "name": "Broken", "path": "accounts/2"},
]})


def use_session(monkeypatch, routes):
    session = FakeSession(routes)
    monkeypatch.setattr(gtm_utils, "get_session", lambda token: session)
    return session


def test_get_session_sets_bearer_header():
    session = gtm_utils.get_session("ya29.abc")
    assert session.headers["Authorization"] == "Bearer ya29.abc"


def test_list_containers_skips_failing_account(monkeypatch):
    use_session(monkeypatch, {
        ("GET", "/accounts"): ACCOUNTS,
        ("GET", "/accounts/1/containers"): FakeResponse(200, {"container": [
            {"containerId": "10", "publicId": "GTM-ACME123", "name": "Acme Web", "path": "accounts/1/containers/10"},
        ]}),
        ("GET", "/accounts/2/containers"): FakeResponse(500, {"error": {"message": "backend error"}}),
    })

    containers = gtm_utils.list_containers("token")

    assert containers == [{
        "accountId": "1",
        "accountName": "Acme",
        "containerId": "10",
        "publicId": "GTM-ACME123",
        "name": "Acme Web",
        "path": "accounts/1/containers/10",
    }]


@pytest.mark.parametrize("status,code", [
    (401, "TOKEN_EXPIRED"),
    (403, "INSUFFICIENT_PERMISSIONS"),
    (500, "GOOGLE_API_ERROR"),
])
def test_http_errors_map_to_codes(monkeypatch, status, code):
    use_session(monkeypatch, {
        ("GET", "/accounts"): FakeResponse(status, {"error": {"message": "denied"}}),
    })

    with pytest.raises(gtm_utils.GTMError) as excinfo:
        gtm_utils.list_containers("token")

    assert excinfo.value.code == code
    assert excinfo.value.status_code == status
    assert str(excinfo.value) == "denied"


def test_create_container_in_first_account(monkeypatch):
    session = use_session(monkeypatch, {
        ("GET", "/accounts"): ACCOUNTS,
        ("POST", "/accounts/1/containers"): FakeResponse(200, {"containerId": "42", "publicId": "GTM-NEW42"}),
        ("POST", "/accounts/1/containers/42/workspaces"): FakeResponse(200, {"workspaceId": "1"}),
    })

    container = gtm_utils.create_container("token", "Acme", "https://acme.example")

    assert container["publicId"] == "GTM-NEW42"
    assert session.posted("/accounts/1/containers") == [{"name": "Acme", "usageContext": ["web"]}]
    assert session.posted("/workspaces") == [{"name": "Default Workspace for https://acme.example"}]


def test_create_container_without_account(monkeypatch):
    use_session(monkeypatch, {("GET", "/accounts"): FakeResponse(200, {})})

    with pytest.raises(gtm_utils.GTMError) as excinfo:
        gtm_utils.create_container("token", "Acme", "https://acme.example")
    assert excinfo.value.code == "NO_GTM_ACCOUNT"


def configured_routes():
    ws = "accounts/1/containers/10/workspaces/3"
    return {
        ("GET", "/accounts"): ACCOUNTS,
        ("GET", "/accounts/1/containers"): FakeResponse(200, {"container": [
            {"containerId": "10", "publicId": "GTM-ACME123", "path": "accounts/1/containers/10"},
        ]}),
        ("GET", "/accounts/2/containers"): FakeResponse(200, {}),
        ("GET", "/containers/10/workspaces"): FakeResponse(200, {"workspace": [{"path": ws}]}),
        ("POST", f"{ws}/triggers"): FakeResponse(200, {"triggerId": "7"}),
        ("POST", f"{ws}/variables"): lambda url, body: FakeResponse(200, {"name": body["name"]}),
        ("POST", f"{ws}/tags"): FakeResponse(200, {"tagId": "1"}),
        ("POST", f"{ws}:create_version"): FakeResponse(200, {"containerVersion": {"path": "accounts/1/containers/10/versions/5"}}),
        ("POST", "versions/5:publish"): FakeResponse(200, {"containerVersion": {}}),
    }


def test_configure_platform_tags_creates_and_publishes(monkeypatch):
    session = use_session(monkeypatch, configured_routes())
    project = Project(name="Acme", url="https://acme.example", gtm_id="GTM-ACME123",
                      meta_pixel_id="123456789012345", ga4_measurement_id="G-ABCDEF1234",
                      google_ads_id="AW-123456789", tiktok_pixel_id="CABCDEFGHIJ1234567")

    result = gtm_utils.configure_platform_tags("token", project)

    assert result == {
        "configured": ["Meta Pixel", "Google Analytics 4", "Google Ads", "TikTok Pixel"],
        "published": True,
    }
    assert session.posted("/triggers") == [{"name": "All Pages", "type": "pageview"}]
    tags = session.posted("/tags")
    assert [t["type"] for t in tags] == ["fbp", "googtag", "gclidw", "html"]
    assert all(t["firingTriggerId"] == ["7"] for t in tags)
    assert tags[0]["parameter"][0]["value"] == "{{Meta Pixel ID}}"
    assert session.posted(":create_version") == [{"name": gtm_utils.VERSION_NAME}]
    assert len(session.posted(":publish")) == 1


def test_configure_platform_tags_without_ids_does_not_publish(monkeypatch):
    session = use_session(monkeypatch, configured_routes())
    project = Project(name="Acme", url="https://acme.example", gtm_id="GTM-ACME123")

    assert gtm_utils.configure_platform_tags("token", project) == {"configured": [], "published": False}
    assert session.posted(":create_version") == []


def test_configure_platform_tags_unknown_container(monkeypatch):
    use_session(monkeypatch, configured_routes())
    project = Project(name="Acme", url="https://acme.example", gtm_id="GTM-OTHER99")

    with pytest.raises(gtm_utils.GTMError) as excinfo:
        gtm_utils.configure_platform_tags("token", project)
    assert excinfo.value.code == "CONTAINER_NOT_FOUND"
    assert excinfo.value.status_code == 404
