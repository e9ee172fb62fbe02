"""Payment attempt orchestration.

Owns the lifecycle of each user-initiated PIX attempt: rate limiting,
validation, creation, and polling until the charge is payable or a terminal
failure is reached. At most one attempt per session is in flight; repeated
intents while one runs join it instead of creating a second provider
transaction.
"""

import asyncio
import time
from typing import Any, Callable, Mapping

from pixpay.common.config import PixSettings, settings
from pixpay.common.errors import (
    GatewayError,
    IncompleteResponse,
    PixPayError,
    PollingAbandoned,
    RateLimited,
    TimedOut,
    TransactionFailed,
    ValidationError,
)
from pixpay.common.logging import log_context, logger
from pixpay.common.metrics import (
    duplicate_attempts_joined_total,
    payment_e2e_seconds,
    payment_failure_total,
    payment_requests_total,
    payment_success_total,
    rate_limited_total,
)
from pixpay.common.rate_limit import RateLimiter
from pixpay.common.state_machine import is_terminal, validate_transition
from pixpay.services.orchestrator.models import AttemptState, PaymentAttempt, PollState
from pixpay.services.orchestrator.poller import StatusPoller
from pixpay.services.orchestrator.validation import validate_payload
from pixpay.services.provider_adapter.models import TransactionResult, TransactionStatus
from pixpay.services.provider_adapter.service import GatewayClient


class PaymentOrchestrator:
    """Drives payment attempts through the attempt state machine."""

    def __init__(
        self,
        gateway: GatewayClient,
        poller: StatusPoller | None = None,
        rate_limiter: RateLimiter | None = None,
        config: PixSettings = settings,
        service_name: str = "orchestrator",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.poller = poller or StatusPoller(
            gateway,
            interval_seconds=config.poll_interval_seconds,
            max_attempts=config.poll_max_attempts,
            service_name=service_name,
        )
        self.rate_limiter = rate_limiter
        self.config = config
        self.service_name = service_name
        self._clock = clock
        self._attempts: dict[str, PaymentAttempt] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._stops: dict[str, asyncio.Event] = {}

    def get_attempt(self, session_id: str) -> PaymentAttempt | None:
        return self._attempts.get(session_id)

    def is_in_flight(self, session_id: str) -> bool:
        task = self._inflight.get(session_id)
        return task is not None and not task.done()

    @property
    def retained_attempts(self) -> int:
        return len(self._attempts)

    def _evict_finished(self) -> None:
        """Forget finished attempts past the retention window or beyond the size cap."""

        horizon = self._clock() - self.config.attempt_retention_seconds
        overflow = len(self._attempts) - self.config.attempt_retention_max
        finished = [
            (session_id, attempt)
            for session_id, attempt in self._attempts.items()
            if attempt.finished_at is not None and not self.is_in_flight(session_id)
        ]
        # Oldest first: a session is re-inserted each time it starts a new attempt.
        for session_id, attempt in finished:
            if attempt.finished_at <= horizon or overflow > 0:
                del self._attempts[session_id]
                overflow -= 1

    async def submit(self, session_id: str, payload: Mapping[str, Any]) -> TransactionResult:
        """Start (or join) the payment attempt for `session_id`.

        Returns the payable `TransactionResult` or raises a `PixPayError`.
        """

        task = self._inflight.get(session_id)
        if task is not None and not task.done():
            duplicate_attempts_joined_total.labels(service=self.service_name).inc()
            logger.info("payment attempt already in flight session_id=%s; joining", session_id)
            return await asyncio.shield(task)

        if self.rate_limiter is not None and not self.rate_limiter.try_acquire(session_id):
            rate_limited_total.labels(service=self.service_name).inc()
            retry_after = self.rate_limiter.retry_after(session_id)
            logger.warning("payment attempt rate limited session_id=%s retry_after_s=%.0f", session_id, retry_after)
            raise RateLimited(session_id, retry_after)

        self._evict_finished()
        attempt = PaymentAttempt(session_id=session_id)
        self._attempts.pop(session_id, None)
        self._attempts[session_id] = attempt
        stop = asyncio.Event()
        self._stops[session_id] = stop
        task = asyncio.create_task(self._run(attempt, dict(payload), stop))
        self._inflight[session_id] = task
        task.add_done_callback(lambda done: self._release(session_id, done))
        return await asyncio.shield(task)

    def abandon(self, session_id: str) -> bool:
        """Ask the session's in-flight attempt to stop scheduling status checks."""

        stop = self._stops.get(session_id)
        if stop is None or not self.is_in_flight(session_id):
            return False
        stop.set()
        logger.info("payment attempt abandon requested session_id=%s", session_id)
        return True

    def _release(self, session_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(session_id) is task:
            self._inflight.pop(session_id, None)
            self._stops.pop(session_id, None)
        if not task.cancelled():
            # Mark the outcome as retrieved even if every awaiting caller went away.
            task.exception()
        self._evict_finished()

    def _transition(self, attempt: PaymentAttempt, new_state: AttemptState) -> None:
        validate_transition(attempt.state.value, new_state.value)
        attempt.history.append((attempt.state.value, new_state.value))
        logger.info(
            "attempt transition session_id=%s %s -> %s",
            attempt.session_id,
            attempt.state.value,
            new_state.value,
        )
        attempt.state = new_state
        if is_terminal(new_state.value):
            attempt.finished_at = self._clock()
            if attempt.result is not None:
                # Raw provider bodies are not kept past the end of the attempt.
                attempt.result.raw = None
            elapsed = max(0.0, time.monotonic() - attempt.started_at)
            payment_e2e_seconds.labels(service=self.service_name, terminal_state=new_state.value).observe(elapsed)

    def _fail(self, attempt: PaymentAttempt, error: PixPayError, state: AttemptState = AttemptState.FAILED) -> PixPayError:
        attempt.error = error
        self._transition(attempt, state)
        payment_failure_total.labels(service=self.service_name, reason=type(error).__name__).inc()
        return error

    def _complete(self, attempt: PaymentAttempt, result: TransactionResult) -> TransactionResult:
        attempt.result = result
        self._transition(attempt, AttemptState.COMPLETE)
        payment_success_total.labels(service=self.service_name).inc()
        return result

    async def _run(self, attempt: PaymentAttempt, payload: dict[str, Any], stop: asyncio.Event) -> TransactionResult:
        with log_context(session_id=attempt.session_id):
            try:
                return await self._drive(attempt, payload, stop)
            except PixPayError:
                raise
            except Exception as exc:
                if not is_terminal(attempt.state.value):
                    attempt.error = GatewayError(None, str(exc), "unexpected error during payment attempt")
                    self._transition(attempt, AttemptState.FAILED)
                logger.exception("payment attempt crashed session_id=%s", attempt.session_id)
                raise

    async def _drive(self, attempt: PaymentAttempt, payload: dict[str, Any], stop: asyncio.Event) -> TransactionResult:
        self._transition(attempt, AttemptState.VALIDATING)
        try:
            request = validate_payload(payload, min_amount=self.config.min_amount)
        except ValidationError as exc:
            logger.info("payment request invalid session_id=%s field=%s", attempt.session_id, exc.field)
            raise self._fail(attempt, exc)

        self._transition(attempt, AttemptState.CREATING)
        payment_requests_total.labels(service=self.service_name).inc()
        try:
            result = await self.gateway.create_transaction(request.to_wire())
        except IncompleteResponse as exc:
            if not exc.transaction_id:
                raise self._fail(attempt, exc)
            logger.info("transaction created without payment data transaction_id=%s", exc.transaction_id)
            result = TransactionResult(transaction_id=exc.transaction_id, raw=exc.raw)
        except PixPayError as exc:
            raise self._fail(attempt, exc)

        attempt.result = result
        if result.has_payment_data:
            return self._complete(attempt, result)
        if not result.transaction_id:
            raise self._fail(attempt, GatewayError(None, result.raw, "provider returned no transaction id"))

        with log_context(transaction_id=result.transaction_id):
            return await self._await_payable(attempt, result.transaction_id, stop)

    async def _await_payable(self, attempt: PaymentAttempt, transaction_id: str, stop: asyncio.Event) -> TransactionResult:
        self._transition(attempt, AttemptState.AWAITING_POLL)
        attempt.poll = PollState(transaction_id=transaction_id)
        self._transition(attempt, AttemptState.POLLING)
        try:
            final = await self.poller.poll(transaction_id, state=attempt.poll, stop=stop)
        except TimedOut as exc:
            raise self._fail(attempt, exc, AttemptState.TIMED_OUT)
        except PollingAbandoned as exc:
            raise self._fail(attempt, exc)

        attempt.result = final
        if final.status is TransactionStatus.FAILED:
            raise self._fail(attempt, TransactionFailed(transaction_id, final))
        return self._complete(attempt, final)
