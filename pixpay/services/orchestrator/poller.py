"""Bounded status polling for transactions created without payment data."""

import asyncio
import time
from typing import Awaitable, Callable, Protocol

from pixpay.common.errors import PollingAbandoned, TimedOut, TransientNetworkError
from pixpay.common.logging import logger
from pixpay.common.metrics import poll_attempts_total
from pixpay.services.orchestrator.models import PollState
from pixpay.services.provider_adapter.models import TransactionResult, TransactionStatus


class StatusSource(Protocol):
    async def get_status(self, transaction_id: str) -> TransactionResult: ...


class StatusPoller:
    """Checks a transaction every `interval_seconds`, at most `max_attempts` times.

    The first check runs immediately, so the wall-clock budget is
    `(max_attempts - 1) * interval_seconds`. Checks never overlap: the next one
    is scheduled only after the previous returned.
    """

    def __init__(
        self,
        gateway: StatusSource,
        interval_seconds: float = 5.0,
        max_attempts: int = 25,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        service_name: str = "orchestrator",
    ) -> None:
        self.gateway = gateway
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._clock = clock
        self.service_name = service_name

    async def poll(
        self,
        transaction_id: str,
        state: PollState | None = None,
        stop: asyncio.Event | None = None,
    ) -> TransactionResult:
        """Return a completed or provider-failed result.

        Raises `TimedOut` once the attempt budget is spent and
        `PollingAbandoned` when `stop` is set.
        """

        state = state or PollState(transaction_id=transaction_id)
        for attempt in range(state.attempts, self.max_attempts):
            if attempt > 0:
                await self._sleep(self.interval_seconds)
            if stop is not None and stop.is_set():
                logger.info("polling abandoned transaction_id=%s attempts=%s", transaction_id, state.attempts)
                raise PollingAbandoned(transaction_id)

            state.attempts = attempt + 1
            state.last_polled_at = self._clock()
            try:
                result = await self.gateway.get_status(transaction_id)
            except TransientNetworkError as exc:
                poll_attempts_total.labels(service=self.service_name, outcome="error").inc()
                logger.warning(
                    "status check failed transaction_id=%s attempt=%s/%s error=%s",
                    transaction_id,
                    state.attempts,
                    self.max_attempts,
                    exc,
                )
                continue

            if result.status is TransactionStatus.COMPLETED and result.has_payment_data:
                poll_attempts_total.labels(service=self.service_name, outcome="completed").inc()
                logger.info("transaction payable transaction_id=%s attempt=%s", transaction_id, state.attempts)
                return result
            if result.status is TransactionStatus.FAILED:
                poll_attempts_total.labels(service=self.service_name, outcome="failed").inc()
                logger.warning("transaction failed at provider transaction_id=%s", transaction_id)
                return result
            poll_attempts_total.labels(service=self.service_name, outcome="pending").inc()
            logger.debug(
                "transaction not ready transaction_id=%s attempt=%s/%s",
                transaction_id,
                state.attempts,
                self.max_attempts,
            )

        logger.warning("polling timed out transaction_id=%s attempts=%s", transaction_id, state.attempts)
        raise TimedOut(transaction_id, state.attempts)
