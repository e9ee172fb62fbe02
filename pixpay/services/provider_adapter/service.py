"""PIX provider client: auth, transaction creation with retries/fallback, status checks."""

import asyncio
import json
from typing import Any, Awaitable, Callable

import httpx
import pydantic

from pixpay.common.config import PixSettings, settings
from pixpay.common.errors import (
    AuthError,
    ConfigurationError,
    GatewayError,
    PayloadRejected,
    TransientNetworkError,
)
from pixpay.common.logging import logger
from pixpay.common.metrics import fallback_total, retries_total
from pixpay.common.tracing import provider_span
from pixpay.services.provider_adapter.models import AccessToken, TransactionResult, TransactionStatus
from pixpay.services.provider_adapter.normalize import (
    normalize_status,
    normalize_transaction,
    provider_error,
)

Sleep = Callable[[float], Awaitable[None]]


def _body(response: httpx.Response) -> Any:
    """Parsed JSON body, or the raw text when the body is not JSON."""

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def fallback_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Reshape a primary-gateway payload for the fallback endpoint.

    The fallback expects the CPF wrapped in a typed `document` object.
    """

    customer = dict(payload.get("customer") or {})
    customer["document"] = {"number": customer.get("cpf"), "type": "cpf"}
    return {**payload, "customer": customer}


class GatewayClient:
    """Talks to the PIX provider and returns normalized `TransactionResult`s."""

    def __init__(
        self,
        config: PixSettings = settings,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        service_name: str = "provider-adapter",
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.service_name = service_name

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_credentials(self) -> None:
        if not self.config.client_id or not self.config.client_secret:
            raise ConfigurationError("provider client_id/client_secret are not configured")

    async def authenticate(self) -> AccessToken:
        """Exchange client credentials (+ extra provider key) for a bearer token.

        Transport errors propagate as `httpx.TransportError`; the create loop
        decides whether to retry them.
        """

        self._require_credentials()
        body = {"client_id": self.config.client_id, "client_secret": self.config.client_secret}
        if self.config.auth_extra_key:
            body[self.config.auth_extra_key] = self.config.auth_extra_value

        with provider_span("pix.authenticate") as span:
            resp = await self._http().post(
                self.config.auth_url,
                json=body,
                timeout=self.config.request_timeout_seconds,
            )
            span.set_attribute("http.status_code", resp.status_code)
        if not resp.is_success:
            logger.error("provider auth rejected status=%s", resp.status_code)
            raise AuthError(resp.status_code, _body(resp))

        data = _body(resp)
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("provider auth response without access_token status=%s", resp.status_code)
            raise AuthError(resp.status_code, "access_token missing from auth response")
        try:
            return AccessToken(
                value=str(token),
                token_type=str(data.get("token_type") or "Bearer"),
                expires_in=data.get("expires_in"),
            )
        except pydantic.ValidationError as exc:
            logger.error("provider auth response malformed status=%s", resp.status_code)
            raise AuthError(resp.status_code, "malformed auth response") from exc

    def _accepted(self, resp: httpx.Response, provider: str) -> TransactionResult:
        """Turn a 2xx creation response into a result or a terminal error."""

        data = _body(resp)
        if not isinstance(data, dict):
            raise GatewayError(resp.status_code, data, "provider returned a non-JSON body")
        error = provider_error(data)
        if error is not None:
            raise GatewayError(resp.status_code, data, f"provider reported error: {error}")
        default_status = (
            TransactionStatus.PENDING if provider == "fallback" else TransactionStatus.WAITING_APPROVAL
        )
        return normalize_transaction(data, provider=provider, default_status=default_status)

    async def create_transaction(self, payload: dict[str, Any]) -> TransactionResult:
        """Create a PIX transaction with bounded retries and one fallback request.

        Retries transport failures and 5xx with exponential backoff
        (`backoff_base_seconds * 2**attempt`). 400 and 401 fail fast. Once the
        primary path is exhausted, one fallback request is made.
        """

        self._require_credentials()
        if self.config.preflight_health_check:
            await self._preflight()

        max_attempts = max(1, self.config.max_create_attempts)
        token: AccessToken | None = None
        last_error: GatewayError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                if token is None:
                    token = await self.authenticate()
                with provider_span("pix.create_transaction", attempt=attempt) as span:
                    resp = await self._http().post(
                        self.config.gateway_url,
                        json=payload,
                        headers={"Authorization": token.authorization},
                        timeout=self.config.request_timeout_seconds,
                    )
                    span.set_attribute("http.status_code", resp.status_code)
            except httpx.TransportError as exc:
                logger.warning(
                    "provider transport failure attempt=%s/%s error=%s",
                    attempt,
                    max_attempts,
                    exc.__class__.__name__,
                )
                last_error = GatewayError(None, str(exc), f"transport failure: {exc.__class__.__name__}")
            else:
                if resp.status_code == 401:
                    logger.error("provider rejected bearer token status=401")
                    raise AuthError(401, _body(resp))
                if resp.status_code == 400:
                    logger.error("provider rejected payload status=400")
                    raise PayloadRejected(_body(resp))
                if resp.is_success:
                    result = self._accepted(resp, "primary")
                    logger.info(
                        "transaction created transaction_id=%s status=%s attempt=%s",
                        result.transaction_id,
                        result.status.value,
                        attempt,
                    )
                    return result
                last_error = GatewayError(resp.status_code, _body(resp))
                if resp.status_code < 500:
                    logger.warning("provider returned non-retryable status=%s", resp.status_code)
                    break
                logger.warning(
                    "provider server error status=%s attempt=%s/%s",
                    resp.status_code,
                    attempt,
                    max_attempts,
                )

            if attempt < max_attempts:
                delay = self.config.backoff_base_seconds * 2**attempt
                retries_total.labels(service=self.service_name, dependency="provider").inc()
                logger.info("retrying transaction creation attempt=%s backoff_s=%s", attempt + 1, delay)
                await self._sleep(delay)

        return await self._fallback(payload, last_error)

    async def _fallback(self, payload: dict[str, Any], primary_error: GatewayError | None) -> TransactionResult:
        """One request to the secondary endpoint using Basic auth."""

        status_code = primary_error.status_code if primary_error else None
        details = primary_error.provider_details if primary_error else None
        if not self.config.fallback_enabled or not self.config.fallback_url:
            raise GatewayError(status_code, details, "primary gateway exhausted; fallback disabled") from primary_error

        logger.warning("primary gateway exhausted status=%s; trying fallback", status_code)
        try:
            with provider_span("pix.fallback_transaction") as span:
                resp = await self._http().post(
                    self.config.fallback_url,
                    json=fallback_payload(payload),
                    auth=httpx.BasicAuth(self.config.client_id, self.config.client_secret),
                    timeout=self.config.request_timeout_seconds,
                )
                span.set_attribute("http.status_code", resp.status_code)
        except httpx.TransportError as exc:
            fallback_total.labels(service=self.service_name, outcome="transport_error").inc()
            logger.error("fallback transport failure error=%s", exc.__class__.__name__)
            raise GatewayError(
                status_code,
                {"primary": details, "fallback": str(exc)},
                "primary gateway and fallback both failed",
            ) from exc

        if not resp.is_success:
            fallback_total.labels(service=self.service_name, outcome="rejected").inc()
            logger.error("fallback rejected status=%s", resp.status_code)
            raise GatewayError(
                status_code,
                {"primary": details, "fallback": _body(resp), "fallback_status": resp.status_code},
                "primary gateway and fallback both failed",
            ) from primary_error

        result = self._accepted(resp, "fallback")
        fallback_total.labels(service=self.service_name, outcome="success").inc()
        logger.info("transaction created via fallback transaction_id=%s", result.transaction_id)
        return result

    async def get_status(self, transaction_id: str) -> TransactionResult:
        """Read the transaction status; "not ready" answers map to `pending`.

        The status endpoint is eventually consistent, so non-2xx is not an
        error. Transport failures raise `TransientNetworkError`.
        """

        url = f"{self.config.status_url.rstrip('/')}/{transaction_id}"
        try:
            with provider_span("pix.get_status", transaction_id=transaction_id) as span:
                resp = await self._http().get(
                    url,
                    auth=httpx.BasicAuth(*self.config.status_credentials),
                    timeout=self.config.status_timeout_seconds,
                )
                span.set_attribute("http.status_code", resp.status_code)
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"status check failed: {exc.__class__.__name__}") from exc

        if not resp.is_success:
            logger.info("transaction not yet available transaction_id=%s status=%s", transaction_id, resp.status_code)
            return TransactionResult(transaction_id=transaction_id, provider="status")
        data = _body(resp)
        if not isinstance(data, dict):
            return TransactionResult(transaction_id=transaction_id, provider="status")
        return normalize_status(data, transaction_id)

    async def _preflight(self) -> None:
        """Log provider health before creating; the outcome never blocks creation."""

        if await self.provider_health():
            logger.info("provider health ok before create")
        else:
            logger.warning("provider health check failed before create; continuing")

    async def provider_health(self) -> bool:
        """Best-effort provider health check; never raises."""

        try:
            resp = await self._http().get(self.config.health_url, timeout=self.config.health_timeout_seconds)
        except httpx.HTTPError as exc:
            logger.warning("provider health check failed error=%s", exc.__class__.__name__)
            return False
        return resp.is_success
