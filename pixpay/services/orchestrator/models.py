"""In-memory state owned by the orchestrator for one payment attempt."""

import time
from dataclasses import dataclass, field
from enum import Enum

from pixpay.common.errors import PixPayError
from pixpay.services.provider_adapter.models import TransactionResult


class AttemptState(str, Enum):
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    CREATING = "CREATING"
    AWAITING_POLL = "AWAITING_POLL"
    POLLING = "POLLING"
    COMPLETE = "COMPLETE"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"


@dataclass
class PollState:
    """Progress of the status loop for one transaction."""

    transaction_id: str
    attempts: int = 0
    last_polled_at: float | None = None


@dataclass
class PaymentAttempt:
    """One user-initiated payment attempt and its lifecycle history."""

    session_id: str
    state: AttemptState = AttemptState.IDLE
    result: TransactionResult | None = None
    error: PixPayError | None = None
    poll: PollState | None = None
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None
    history: list[tuple[str, str]] = field(default_factory=list)
