import copy
import json
import sys
from pathlib import Path

import httpx
import pytest

# Add backend directory to sys.path to allow imports from openurl_gateway
backend_path = Path(__file__).parent.parent.parent.resolve()
sys.path.append(str(backend_path))

from fastapi.testclient import TestClient

from openurl_gateway.main import create_app
from openurl_gateway.pipeline.request_context import PipelineResources
from openurl_gateway.services.config_manager import ConfigManager
from openurl_gateway.services.request_classifier import classify_request
from openurl_gateway.services.service_registry import ServiceRegistry
from openurl_gateway.services.template_renderer import TemplateRenderer


OKAPI_URL = "http://okapi.test"

BASE_CONFIG = {
    "doc_root": "htdocs",
    "okapi_url": OKAPI_URL,
    "tenant": "diku",
    "username": "admin",
    "password": "secret",
    "allow_fault_injection": True,
    "services": {
        "alpha": {"tenant": "alpha"},
        "beta": {"tenant": "beta"},
        "ISIL:US-TRUST": {
            "req_id_header": "X-Remote-User",
            "id_transform": {"regex": "@.*$", "replacement": "", "case": "upper"},
        },
        "digital": {"digital_only": True},
    },
}

PICKUP_ENTRIES = [
    {"id": "loc-2", "slug": "NORTH", "name": "North Branch"},
    {"id": "loc-1", "slug": "MAIN", "name": "Main Library"},
]


# =============================================================================
# FAKE DOWNSTREAM
# =============================================================================

class FakeOkapi:
    """In-process stand-in for an Okapi gateway, served through httpx.MockTransport."""

    def __init__(self):
        self.calls = []
        self.logins = 0
        self.valid_tokens = set()
        self.reject_login = False
        self.submit_status = 201
        self.submit_body = None  # None: echo the submitted document as JSON
        self.pickup_entries = list(PICKUP_ENTRIES)
        self.pickup_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path

        if path == "/authn/login":
            if self.reject_login:
                return httpx.Response(422, text="Password does not match")
            self.logins += 1
            token = f"token-{self.logins}"
            self.valid_tokens.add(token)
            return httpx.Response(201, headers={"x-okapi-token": token}, json={"username": "admin"})

        if request.headers.get("x-okapi-token") not in self.valid_tokens:
            return httpx.Response(401, text="Invalid token")

        if path == "/directory/entry":
            if self.pickup_status != 200:
                return httpx.Response(self.pickup_status, text="Service unavailable")
            return httpx.Response(200, json=self.pickup_entries)

        if path == "/rs/patronrequests":
            if self.submit_body is not None:
                return httpx.Response(self.submit_status, text=self.submit_body)
            document = json.loads(request.content)
            return httpx.Response(self.submit_status, json={"id": "pr-1", "hrid": "RS-1", **document})

        return httpx.Response(404, text=f"No suitable module found for path {path}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str):
        return [r for r in self.calls if r.url.path == path]

    def submissions(self):
        return [json.loads(r.content) for r in self.requests_to("/rs/patronrequests")]


class RecordingRenderer:
    """Template renderer stand-in that records what each template was given."""

    def __init__(self):
        self.rendered = []

    def get_template(self, name):
        def render(data):
            self.rendered.append((name, data))
            return f"<{name}>"
        return render


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fake_okapi():
    return FakeOkapi()


@pytest.fixture
def make_config(tmp_path):
    htdocs = tmp_path / "htdocs"
    (htdocs / "static").mkdir(parents=True)
    (htdocs / "index.html").write_text("<h1>OpenURL gateway</h1>")
    (htdocs / "static" / "site.css").write_text("body { margin: 0; }")

    def _make(**overrides):
        values = copy.deepcopy(BASE_CONFIG)
        values.update(overrides)
        return ConfigManager(values, tmp_path / "config.yaml")
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def resources(config, fake_okapi):
    return PipelineResources(
        config,
        ServiceRegistry(config, transport=fake_okapi.transport),
        TemplateRenderer(config.template_dir),
    )


@pytest.fixture
def recorder():
    return RecordingRenderer()


@pytest.fixture
def recording_resources(config, fake_okapi, recorder):
    return PipelineResources(
        config,
        ServiceRegistry(config, transport=fake_okapi.transport),
        recorder,
    )


@pytest.fixture
def make_context():
    def _make(resources, query, path="/alpha", headers=None):
        return classify_request(query, path, headers or {}, resources)
    return _make


@pytest.fixture
def make_client(make_config, fake_okapi):
    def _make(**overrides):
        return TestClient(create_app(make_config(**overrides), transport=fake_okapi.transport))
    return _make


@pytest.fixture
def client(make_client):
    return make_client()
