"""Startup-time helpers for safe config logging."""

import os
from urllib.parse import urlsplit

from pixpay.common.config import PixSettings
from pixpay.common.logging import logger

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def _safe_env(name: str) -> str:
    """Return env value with redaction for secret-like variable names."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return value


def provider_summary(config: PixSettings) -> dict[str, str]:
    """Effective provider wiring: endpoint hosts, credential presence, budgets."""

    return {
        "gateway_host": urlsplit(config.gateway_url).netloc,
        "fallback_host": urlsplit(config.fallback_url).netloc if config.fallback_enabled else "<disabled>",
        "status_host": urlsplit(config.status_url).netloc,
        "credentials": "configured" if config.client_id and config.client_secret else "missing",
        "create_attempts": str(config.max_create_attempts),
        "poll_budget": f"{config.poll_max_attempts}x{config.poll_interval_seconds:g}s",
        "rate_limit": f"{config.rate_limit_max_attempts}/{config.rate_limit_window_seconds:g}s",
    }


def log_startup_config(config: PixSettings, keys: list[str]) -> dict[str, str]:
    """Log selected env keys plus the provider summary for quick troubleshooting."""

    summary = {"service": config.service_name}
    for key in keys:
        summary[key] = _safe_env(key)
    summary.update(provider_summary(config))
    if summary["credentials"] == "missing":
        logger.warning("provider credentials missing; payment creation will fail until CLIENT_ID/CLIENT_SECRET are set")
    logger.info("startup_config=%s", summary)
    return summary
