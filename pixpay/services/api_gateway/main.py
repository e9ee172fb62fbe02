"""HTTP entrypoint for PIX charge creation and status checks.

Thin request/response layer over `PaymentOrchestrator`: optional API key auth,
session resolution, caller IP capture, and mapping of payment-core errors to
HTTP responses with one human-readable message each.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any
from uuid import uuid4

from fastapi import Body, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pixpay.common.config import settings
from pixpay.common.errors import (
    AuthError,
    IncompleteResponse,
    MissingField,
    PayloadRejected,
    PixPayError,
    PollingAbandoned,
    RateLimited,
    TimedOut,
    TransactionFailed,
    TransientNetworkError,
    ValidationError,
)
from pixpay.common.logging import configure_logging, logger, trace_id_ctx
from pixpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from pixpay.common.rate_limit import build_rate_limiter
from pixpay.common.startup import log_startup_config
from pixpay.common.tracing import instrument_app, setup_tracing
from pixpay.services.orchestrator.schemas import AttemptResponse
from pixpay.services.orchestrator.service import PaymentOrchestrator
from pixpay.services.provider_adapter.service import GatewayClient

configure_logging()
if settings.tracing_enabled:
    setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "SERVICE_NAME",
        "GATEWAY_URL",
        "FALLBACK_URL",
        "STATUS_URL",
        "CLIENT_ID",
        "CLIENT_SECRET",
        "RATE_LIMIT_BACKEND",
        "RATE_LIMIT_MAX_ATTEMPTS",
        "RATE_LIMIT_WINDOW_SECONDS",
    ],
)
gateway = GatewayClient(settings)
orchestrator = PaymentOrchestrator(gateway, rate_limiter=build_rate_limiter(settings), config=settings)

# Most specific classes first; the first isinstance match wins.
ERROR_STATUS: list[tuple[type[PixPayError], int]] = [
    (ValidationError, 400),
    (PayloadRejected, 400),
    (AuthError, 401),
    (PollingAbandoned, 409),
    (TransactionFailed, 422),
    (RateLimited, 429),
    (IncompleteResponse, 502),
    (TransientNetworkError, 502),
    (TimedOut, 504),
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the provider HTTP client with the app lifecycle."""

    yield
    await gateway.close()


app = FastAPI(title="PixPay API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
if settings.tracing_enabled:
    instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests without the configured API key (no-op when unset)."""

    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def client_ip(request: Request) -> str:
    """Caller address as seen through common proxy headers."""

    for header in ("cf-connecting-ip", "x-forwarded-for", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "127.0.0.1"


def error_response(exc: PixPayError) -> JSONResponse:
    """Map a payment-core error onto a JSON error body."""

    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 502)
    content: dict[str, Any] = {"success": False, "error": exc.user_message, "details": str(exc)}
    headers = None
    if isinstance(exc, ValidationError):
        content["field"] = exc.field
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(int(exc.retry_after) + 1)}
    transaction_id = getattr(exc, "transaction_id", None)
    if transaction_id:
        content["transaction_id"] = transaction_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.post("/payments")
async def create_payment(
    request: Request,
    payload: dict[str, Any] = Body(...),
    x_api_key: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
    x_correlation_id: str | None = Header(default=None),
):
    """Create a PIX charge and wait until it is payable or fails.

    `x-session-id` is required: it scopes the in-flight guard, so a repeated
    call for the same session while one attempt is running returns that
    attempt's outcome. The caller IP is never used as the session.
    """

    enforce_api_key(x_api_key)
    trace_id_ctx.set(x_correlation_id or str(uuid4()))
    if not x_session_id or not x_session_id.strip():
        return error_response(MissingField("x-session-id"))
    session_id = x_session_id.strip()
    ip = client_ip(request)
    if not payload.get("ip"):
        payload["ip"] = ip

    try:
        result = await orchestrator.submit(session_id, payload)
    except PixPayError as exc:
        logger.warning("payment attempt failed session_id=%s error=%s", session_id, type(exc).__name__)
        return error_response(exc)
    return {"success": True, "data": {**result.to_public(), "message": result.message or "PIX generated"}}


@app.get("/payments/{session_id}", response_model=AttemptResponse)
async def get_payment(session_id: str, x_api_key: str | None = Header(default=None)):
    """Current state of a session's latest payment attempt."""

    enforce_api_key(x_api_key)
    attempt = orchestrator.get_attempt(session_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail="payment attempt not found")
    return AttemptResponse(
        session_id=session_id,
        state=attempt.state.value,
        transaction=attempt.result.to_public() if attempt.result else None,
        error=attempt.error.user_message if attempt.error else None,
        poll_attempts=attempt.poll.attempts if attempt.poll else None,
    )


@app.post("/payments/{session_id}/abandon")
async def abandon_payment(session_id: str, x_api_key: str | None = Header(default=None)):
    """Stop polling for the session's in-flight attempt."""

    enforce_api_key(x_api_key)
    return {"abandoned": orchestrator.abandon(session_id)}


@app.post("/transactions/status")
async def transaction_status(
    body: dict[str, Any] | None = Body(default=None),
    x_api_key: str | None = Header(default=None),
):
    """One status check for a transaction; "not ready" is reported as pending."""

    enforce_api_key(x_api_key)
    transaction_id = (body or {}).get("transactionId")
    if not transaction_id:
        return JSONResponse(status_code=400, content={"success": False, "error": "transactionId is required"})
    try:
        result = await gateway.get_status(str(transaction_id))
    except TransientNetworkError as exc:
        logger.warning("status check failed transaction_id=%s error=%s", transaction_id, exc)
        return {"success": False, "status": "pending", "message": "transaction not available yet"}
    payable = result.has_payment_data and result.status.value == "completed"
    return {
        "success": payable,
        "status": result.status.value,
        "pix_code": result.payment_code,
        "qr_code_base64": result.payment_code_image,
        "transaction_id": str(transaction_id),
    }


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container liveness endpoint."""

    return {"ok": True}


@app.get("/health/provider")
async def provider_health():
    """Best-effort reachability of the PIX provider."""

    return {"ok": await gateway.provider_health()}
