"""Shared fixtures: settings, a scripted fake provider, and a recording sleep."""

import copy
import json
from typing import Any

import httpx
import pytest

from pixpay.common.config import PixSettings

AUTH_URL = "https://auth.provider.test/api/partner/v1/auth-token"
GATEWAY_URL = "https://gateway.provider.test/v1/gateway/api"
FALLBACK_URL = "https://fallback.provider.test/api/v1/pix"
STATUS_URL = "https://status.provider.test/v1/gateway/api/transaction"
HEALTH_URL = "https://gateway.provider.test/health"

VALID_PAYLOAD: dict[str, Any] = {
    "ip": "203.0.113.7",
    "amount": 29.9,
    "customer": {
        "name": "Maria Silva",
        "email": "maria@example.com",
        "cpf": "111.444.777-35",
        "phone": "(11) 98888-7777",
        "externaRef": "ORDER_1700000000000_abc123",
        "address": {
            "street": "Rua das Flores",
            "streetNumber": 42,
            "complement": "",
            "zipCode": "01310-100",
            "neighborhood": "Bela Vista",
            "city": "São Paulo",
            "state": "SP",
            "country": "BR",
        },
    },
    "items": [{"title": "Emissão de RG", "quantity": 1, "unitPrice": 29.9, "tangible": True}],
    "postbackUrl": "https://example.com/payment-webhook",
    "pix": {"expiresInDays": "2024-12-31"},
    "metadata": {"provider": "TestApp"},
    "traceable": True,
}

PAYABLE_BODY = {
    "idTransaction": "tx-123",
    "paymentCode": "00020126580014br.gov.bcb.pix0136",
    "paymentCodeBase64": "iVBORw0KGgoAAAANSUhEUg==",
    "status_transaction": "WAITING_FOR_APPROVAL",
}


def json_response(status_code: int, body: Any) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body).encode(), headers={"content-type": "application/json"})


class FakeProvider:
    """Scripted stand-in for the provider's HTTP API, served via `httpx.MockTransport`.

    Each route holds a queue of responses (or exceptions to raise); the last
    entry repeats once the queue is drained.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[Any]] = {
            AUTH_URL: [json_response(200, {"access_token": "token-abc", "expires_in": 3600})],
            GATEWAY_URL: [json_response(200, PAYABLE_BODY)],
            FALLBACK_URL: [json_response(500, {"error": "fallback down"})],
            HEALTH_URL: [json_response(200, {"ok": True})],
        }
        self.status_script: list[Any] = [httpx.Response(404)]

    def script(self, url: str, *responses: Any) -> None:
        self.routes[url] = list(responses)

    def script_status(self, *responses: Any) -> None:
        self.status_script = list(responses)

    def calls(self, url: str) -> list[httpx.Request]:
        return [req for req in self.requests if str(req.url).startswith(url)]

    def _next(self, queue: list[Any], request: httpx.Request) -> httpx.Response:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, type) and issubclass(item, Exception):
            raise item("scripted failure", request=request)
        if isinstance(item, Exception):
            raise item
        return item

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(STATUS_URL):
            return self._next(self.status_script, request)
        return self._next(self.routes[url], request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def pix_settings() -> PixSettings:
    """Settings pointing at the fake provider, with test credentials."""

    return PixSettings(
        _env_file=None,
        auth_url=AUTH_URL,
        gateway_url=GATEWAY_URL,
        fallback_url=FALLBACK_URL,
        status_url=STATUS_URL,
        health_url=HEALTH_URL,
        client_id="client-id",
        client_secret="client-secret",
        auth_extra_key="partner-key",
        auth_extra_value="partner-value",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    """A fresh copy of a fully populated, valid payment request."""

    return copy.deepcopy(VALID_PAYLOAD)
