"""HTTP surface tests: request handling, error mapping and status checks."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import GATEWAY_URL, PAYABLE_BODY, json_response
from pixpay.common.rate_limit import SlidingWindowRateLimiter
from pixpay.services.api_gateway import main
from pixpay.services.orchestrator.poller import StatusPoller
from pixpay.services.orchestrator.service import PaymentOrchestrator
from pixpay.services.provider_adapter.service import GatewayClient


@pytest.fixture
def api(monkeypatch, pix_settings, provider, recording_sleep):
    """TestClient whose orchestrator talks to the scripted provider."""

    def install(max_attempts: int = 10, max_polls: int = 25) -> TestClient:
        gateway = GatewayClient(pix_settings, client=provider.client(), sleep=recording_sleep)
        orchestrator = PaymentOrchestrator(
            gateway,
            poller=StatusPoller(gateway, max_attempts=max_polls, sleep=recording_sleep),
            rate_limiter=SlidingWindowRateLimiter(max_attempts=max_attempts, window_seconds=300),
            config=pix_settings,
        )
        monkeypatch.setattr(main, "gateway", gateway)
        monkeypatch.setattr(main, "orchestrator", orchestrator)
        return TestClient(main.app)

    return install


def test_create_payment_success(api, valid_payload):
    client = api()

    resp = client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["idTransaction"] == "tx-123"
    assert body["data"]["paymentCode"] == PAYABLE_BODY["paymentCode"]
    assert body["data"]["paymentCodeBase64"] == PAYABLE_BODY["paymentCodeBase64"]
    assert body["data"]["message"] == "PIX generated"


def test_caller_ip_is_filled_from_proxy_headers(api, provider, valid_payload):
    client = api()
    del valid_payload["ip"]

    resp = client.post(
        "/payments",
        json=valid_payload,
        headers={"x-session-id": "s-1", "x-forwarded-for": "198.51.100.1, 10.0.0.1"},
    )

    assert resp.status_code == 200
    sent = json.loads(provider.calls(GATEWAY_URL)[0].content)
    assert sent["ip"] == "198.51.100.1"


def test_validation_error_names_field(api, provider, valid_payload):
    client = api()
    valid_payload["customer"]["cpf"] = "123"

    resp = client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["field"] == "customer.cpf"
    assert body["error"] == "Please check your payment details and try again."
    assert provider.requests == []


def test_rate_limited_response(api, valid_payload):
    client = api(max_attempts=1)

    assert client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"}).status_code == 200
    resp = client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"})

    assert resp.status_code == 429
    assert int(resp.headers["retry-after"]) > 0


def test_polling_timeout_maps_to_504(api, provider, valid_payload):
    provider.script(GATEWAY_URL, json_response(200, {"idTransaction": "tx-9"}))
    client = api(max_polls=2)

    resp = client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"})

    assert resp.status_code == 504
    assert resp.json()["transaction_id"] == "tx-9"


def test_attempt_state_is_readable(api, valid_payload):
    client = api()
    client.post("/payments", json=valid_payload, headers={"x-session-id": "s-1"})

    resp = client.get("/payments/s-1")

    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "COMPLETE"
    assert body["transaction"]["idTransaction"] == "tx-123"
    assert body["error"] is None


def test_unknown_attempt_is_404(api):
    assert api().get("/payments/nobody").status_code == 404


def test_abandon_without_attempt(api):
    resp = api().post("/payments/nobody/abandon")

    assert resp.status_code == 200
    assert resp.json() == {"abandoned": False}


def test_status_requires_transaction_id(api):
    resp = api().post("/transactions/status", json={})

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_status_not_ready_is_pending(api):
    resp = api().post("/transactions/status", json={"transactionId": "tx-123"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["status"] == "pending"
    assert body["transaction_id"] == "tx-123"


def test_status_payable(api, provider):
    provider.script_status(json_response(200, {"pix_code": "000201", "qr_code_base64": "iVBOR"}))

    body = api().post("/transactions/status", json={"transactionId": "tx-123"}).json()

    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["pix_code"] == "000201"
    assert body["qr_code_base64"] == "iVBOR"


def test_status_network_failure_is_pending(api, provider):
    provider.script_status(httpx.ConnectError)

    body = api().post("/transactions/status", json={"transactionId": "tx-123"}).json()

    assert body == {"success": False, "status": "pending", "message": "transaction not available yet"}


def test_api_key_is_enforced_when_configured(api, monkeypatch, valid_payload):
    client = api()
    monkeypatch.setattr(main.settings, "api_key", "expected-key")

    assert client.post("/payments", json=valid_payload).status_code == 401
    resp = client.post("/payments", json=valid_payload, headers={"x-api-key": "expected-key", "x-session-id": "s-1"})
    assert resp.status_code == 200


def test_health_and_metrics(api):
    client = api()

    assert client.get("/health").json() == {"ok": True}
    assert client.get("/health/provider").json() == {"ok": True}
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text


def test_session_header_is_required(api, provider, valid_payload):
    client = api()

    resp = client.post("/payments", json=valid_payload)

    assert resp.status_code == 400
    assert resp.json()["field"] == "x-session-id"
    assert provider.requests == []


def test_callers_behind_one_address_get_their_own_charges(api, provider, valid_payload):
    """Two sessions sharing an IP are never merged into one attempt."""

    client = api()
    shared_ip = {"x-forwarded-for": "200.1.1.1"}
    bob_payload = dict(valid_payload, amount=999.0)

    alice = client.post("/payments", json=valid_payload, headers={**shared_ip, "x-session-id": "alice"})
    bob = client.post("/payments", json=bob_payload, headers={**shared_ip, "x-session-id": "bob"})

    assert alice.status_code == bob.status_code == 200
    sent = [json.loads(request.content)["amount"] for request in provider.calls(GATEWAY_URL)]
    assert sent == [29.9, 999.0]
    assert client.get("/payments/200.1.1.1").status_code == 404
