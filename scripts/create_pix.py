"""Submit one sample PIX charge to a running PixPay API and print the outcome."""

import argparse
import asyncio
import json
import time
from datetime import date, timedelta
from uuid import uuid4

import httpx

from pixpay.services.orchestrator.schemas import new_external_reference


def sample_payload(amount: float, title: str, postback_url: str) -> dict:
    """Fully populated request with placeholder customer data."""

    return {
        "amount": amount,
        "customer": {
            "name": "Cliente Teste",
            "email": "cliente@example.com",
            "cpf": "111.444.777-35",
            "phone": "(11) 99999-9999",
            "externaRef": new_external_reference(),
            "address": {
                "street": "Rua Exemplo",
                "streetNumber": "123",
                "neighborhood": "Centro",
                "city": "São Paulo",
                "state": "SP",
                "country": "BR",
                "zipCode": "01000-000",
            },
        },
        "items": [{"title": title, "quantity": 1, "unitPrice": amount, "tangible": True}],
        "postbackUrl": postback_url,
        "pix": {"expiresInDays": (date.today() + timedelta(days=2)).isoformat()},
        "traceable": True,
    }


async def run(base_url: str, api_key: str | None, session_id: str, payload: dict, timeout: float) -> int:
    headers = {"x-session-id": session_id, "x-correlation-id": str(uuid4())}
    if api_key:
        headers["x-api-key"] = api_key
    started = time.perf_counter()
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(f"{base_url}/payments", json=payload, headers=headers)
    elapsed_ms = (time.perf_counter() - started) * 1000
    print(f"status={resp.status_code} elapsed_ms={elapsed_ms:.0f}")
    print(json.dumps(resp.json(), indent=2, ensure_ascii=False))
    return resp.status_code


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create one PIX charge through the PixPay API.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--api-key", default=None)
    parser.add_argument("--session-id", default=f"cli-{uuid4().hex[:8]}")
    parser.add_argument("--amount", type=float, default=29.90)
    parser.add_argument("--title", default="Agendamento de serviço")
    parser.add_argument("--postback-url", default="https://example.com/payment-webhook")
    # Creation plus polling can take ~2.5 minutes end to end.
    parser.add_argument("--timeout", type=float, default=180.0)
    args = parser.parse_args()
    payload = sample_payload(args.amount, args.title, args.postback_url)
    status = asyncio.run(run(args.base_url, args.api_key, args.session_id, payload, args.timeout))
    raise SystemExit(0 if status < 400 else 1)
