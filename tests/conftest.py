import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ.setdefault("GOOGLE_GEMINI_API_KEY", "test-key")

import pytest

from activity import feed
from app import app as flask_app
from models import db, Project, User

API_TOKEN = "test-token"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    @property
    def content(self):
        return b"" if self.payload is None else b"{}"

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON body")
        return self.payload


class FakeSession:
    """
    Stands in for requests.Session. `routes` maps (METHOD, url-suffix) to a
    FakeResponse or a callable(url, body) returning one.
    """

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []
        self.headers = {}

    def _respond(self, method, url, body):
        self.calls.append((method, url, body))
        for (route_method, suffix), response in self.routes.items():
            if route_method == method and url.endswith(suffix):
                return response(url, body) if callable(response) else response
        return FakeResponse(404, {"error": {"message": f"No route for {method} {url}"}})

    def get(self, url, timeout=None, **kwargs):
        return self._respond("GET", url, None)

    def post(self, url, json=None, timeout=None, **kwargs):
        return self._respond("POST", url, json)

    def request(self, method, url, json=None, headers=None, timeout=None):
        return self._respond(method, url, json)

    def posted(self, suffix):
        return [body for method, url, body in self.calls if method == "POST" and url.endswith(suffix)]


@pytest.fixture
def app():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        feed.clear()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def user(app):
    u = User(email="ops@example.com", api_token=API_TOKEN)
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture
def project(user):
    p = Project(
        user_id=user.id,
        name="Acme Store",
        url="https://acme.example",
        conversion_events=[],
        selected_platforms=[],
    )
    db.session.add(p)
    db.session.commit()
    return p
