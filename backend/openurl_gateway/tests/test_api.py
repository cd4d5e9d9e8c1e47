import html
import re

import httpx
from fastapi.testclient import TestClient

from openurl_gateway.main import create_app
from openurl_gateway.services.okapi_session import OkapiSession

from conftest import OKAPI_URL

HIDDEN_INPUT = re.compile(r'<input type="hidden" name="([^"]*)" value="([^"]*)" />')


def hidden_fields(body):
    return {html.unescape(n): html.unescape(v) for n, v in HIDDEN_INPUT.findall(body)}


# ------------------------------------------------------------------
# HEALTH / STATIC
# ------------------------------------------------------------------

def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "openurl-gateway"}


def test_bare_root_serves_index(client, fake_okapi):
    response = client.get("/")

    assert response.status_code == 200
    assert "OpenURL gateway" in response.text
    assert fake_okapi.calls == []


def test_static_assets_bypass_pipeline(client, fake_okapi):
    response = client.get("/static/site.css")

    assert response.status_code == 200
    assert "margin" in response.text
    assert fake_okapi.calls == []


def test_missing_favicon_is_404(client):
    assert client.get("/favicon.ico").status_code == 404


def test_root_with_query_enters_pipeline(client):
    response = client.get("/", params={"rft.au": "Herbert"})

    assert response.status_code == 200
    assert "Request an item" in response.text


# ------------------------------------------------------------------
# SYMBOL RESOLUTION
# ------------------------------------------------------------------

def test_unsupported_service_is_404(make_client):
    client = make_client(okapi_url=None, services={"alpha": {"okapi_url": OKAPI_URL}})

    response = client.get("/unknown", params={"rft.title": "Dune"})

    assert response.status_code == 404
    assert "unsupported service 'unknown'" in response.text


def test_res_org_selects_service(client, fake_okapi):
    response = client.get(
        "/alpha",
        params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "res.org": "beta"},
    )

    assert response.status_code == 200
    assert fake_okapi.submissions()[0]["requestingInstitutionSymbol"] == "RESHARE:beta"
    submitted = fake_okapi.requests_to("/rs/patronrequests")[0]
    assert submitted.headers["x-okapi-tenant"] == "beta"


# ------------------------------------------------------------------
# FORMS
# ------------------------------------------------------------------

def test_missing_title_renders_form1_without_submitting(client, fake_okapi):
    response = client.get("/alpha", params={"rft.au": "Herbert", "svc.pickupLocation": "MAIN"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "Request an item" in response.text
    assert fake_okapi.submissions() == []


def test_form2_increments_counter(client):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.ntries": "4"})

    assert "Confirm your request" in response.text
    assert hidden_fields(response.text)["svc.ntries"] == "5"


def test_passthrough_fields_survive_round_trip(client):
    params = {"rft.title": "Dune", "rfr.id": "EBSCO:db", "custom": 'a "b" <c> & d'}

    response = client.get("/alpha", params=params)

    fields = hidden_fields(response.text)
    assert fields["rfr.id"] == "EBSCO:db"
    assert fields["custom"] == 'a "b" <c> & d'
    assert list(fields) == sorted(fields)


def test_resubmitting_form_reaches_submission(client, fake_okapi):
    first = client.get("/alpha", params={"rft.title": "Dune", "rfr.id": "EBSCO:db"})
    resubmission = hidden_fields(first.text)
    resubmission["svc.pickupLocation"] = "MAIN"

    second = client.get("/alpha", params=resubmission)

    assert second.status_code == 200
    assert "Your request has been submitted" in second.text
    assert fake_okapi.submissions()[0]["title"] == "Dune"


def test_confirm_redisplays_complete_request(client, fake_okapi):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "confirm": ""})

    assert "Confirm your request" in response.text
    assert fake_okapi.submissions() == []


# ------------------------------------------------------------------
# DIAGNOSTICS
# ------------------------------------------------------------------

def test_context_object_dump(client, fake_okapi):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "svc_id": "contextObject"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/json")
    assert response.json() == {
        "admindata": {"svc": {"id": "contextObject"}},
        "metadata": {"rft": {"title": "Dune"}, "svc": {"pickupLocation": "MAIN"}},
    }
    assert fake_okapi.submissions() == []


def test_reshare_request_dump(client, fake_okapi):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "svc_id": "reshareRequest"})

    assert response.json()["requestingInstitutionSymbol"] == "RESHARE:alpha"
    assert fake_okapi.submissions() == []


# ------------------------------------------------------------------
# SESSION CONTROL
# ------------------------------------------------------------------

def test_logout_clears_token_and_forces_login(client, fake_okapi, mocker):
    params = {"rft.title": "Dune", "svc.pickupLocation": "MAIN"}
    client.get("/alpha", params=params)
    assert fake_okapi.logins == 1

    logout_spy = mocker.spy(OkapiSession, "logout")
    seen = len(fake_okapi.calls)
    client.get("/alpha", params={**params, "svc.logout": "1"})

    paths = [request.url.path for request in fake_okapi.calls[seen:]]
    assert paths == ["/authn/login", "/rs/patronrequests"]
    assert logout_spy.call_count == 1
    assert fake_okapi.logins == 2


def test_poisoned_token_is_recovered_by_login(client, fake_okapi):
    params = {"rft.title": "Dune", "svc.pickupLocation": "MAIN"}
    client.get("/alpha", params=params)

    response = client.get("/alpha", params={**params, "svc.logout": "true"})

    assert response.status_code == 200
    assert fake_okapi.logins == 2
    assert len(fake_okapi.submissions()) == 3


# ------------------------------------------------------------------
# SUBMISSION
# ------------------------------------------------------------------

def test_digital_only_submits_url_delivery(client, fake_okapi):
    response = client.get(
        "/digital",
        params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "svc.deliveryMethod": "Mail"},
    )

    assert response.status_code == 200
    assert fake_okapi.submissions()[0]["deliveryMethod"] == "URL"
    assert fake_okapi.requests_to("/directory/entry") == []


def test_json_mode_success(client):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "svc_id": "json"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/json")
    body = response.json()
    assert body["status"] == 201
    assert body["reshareRequest"]["pickupLocationSlug"] == "MAIN"


def test_submission_failure_renders_bad_page(client, fake_okapi):
    fake_okapi.submit_status = 500
    fake_okapi.submit_body = "boom"

    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("text/html")
    assert response.headers["x-error"] == "Error encountered submitting request to mod-rs"
    assert '<span class="status">500</span>' in response.text
    assert "boom" in response.text


def test_submission_failure_in_json_mode(client, fake_okapi):
    fake_okapi.submit_status = 500
    fake_okapi.submit_body = "boom"

    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "svc_id": "json"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("text/json")
    body = response.json()
    assert body["status"] == 500
    assert body["message"] == "boom"


def test_fault_injection_flag(client, fake_okapi):
    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN", "ctx_FAIL": "1"})

    assert response.status_code == 500
    assert fake_okapi.requests_to("/not-there")


def test_unreachable_downstream_is_502(make_config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = TestClient(create_app(make_config(), transport=httpx.MockTransport(handler)))

    response = client.get("/alpha", params={"rft.title": "Dune", "svc.pickupLocation": "MAIN"})

    assert response.status_code == 502
    assert "Cannot reach" in response.text


def test_parameter_named_like_render_argument_is_passed_through(client, fake_okapi):
    response = client.get("/alpha", params={"rft.title": "Dune", "self": "x"})

    assert response.status_code == 200
    assert "Confirm your request" in response.text
    assert hidden_fields(response.text)["self"] == "x"
    assert fake_okapi.submissions() == []
