"""Structured JSON logging for payment attempts.

Every record carries the service name plus the correlation, session and
transaction ids of the attempt being processed. Customer documents and bearer
tokens are masked before a record is formatted.
"""

import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from pythonjsonlogger.json import JsonFormatter

from pixpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
session_id_ctx: ContextVar[str] = ContextVar("session_id", default="")
transaction_id_ctx: ContextVar[str] = ContextVar("transaction_id", default="")

_CONTEXT_VARS = {
    "trace_id": trace_id_ctx,
    "session_id": session_id_ctx,
    "transaction_id": transaction_id_ctx,
}

# CPF with or without punctuation, and bearer tokens.
_CPF = re.compile(r"(?<!\d)\d{3}\.?\d{3}\.?\d{3}-?\d{2}(?!\d)")
_BEARER = re.compile(r"(Bearer\s+)[\w\-.~+/]+=*", re.IGNORECASE)


def mask_sensitive(text: str) -> str:
    """Mask CPFs (keeping the last two digits) and bearer token values."""

    text = _CPF.sub(lambda match: "***.***.***-" + re.sub(r"\D", "", match.group())[-2:], text)
    return _BEARER.sub(r"\1<redacted>", text)


@contextmanager
def log_context(**ids: str | None) -> Iterator[None]:
    """Bind attempt identifiers (`session_id`, `transaction_id`, `trace_id`) for nested logs."""

    tokens = [(_CONTEXT_VARS[name], _CONTEXT_VARS[name].set(value)) for name, value in ids.items() if value]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class ContextFilter(logging.Filter):
    """Inject service and attempt identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        for name, var in _CONTEXT_VARS.items():
            setattr(record, name, var.get())
        return True


class SensitiveDataFilter(logging.Filter):
    """Render the message once and mask customer documents and tokens in it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = mask_sensitive(record.getMessage())
        record.args = None
        return True


def configure_logging(level: str | None = None) -> None:
    """Configure root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    handler.addFilter(SensitiveDataFilter())
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(session_id)s %(transaction_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.log_level)
    root.addFilter(context_filter)

    # httpx logs every request line at INFO, including provider URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger("pixpay")
