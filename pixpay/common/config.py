"""Central environment-driven settings for the PIX payment core.

Loaded once per process. Provider endpoints, credentials, retry/poll budgets and
rate-limit windows are all controlled by environment variables (see
`.env.example`).
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class PixSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pixpay"
    log_level: str = "INFO"

    auth_url: str = "https://api.syncpayments.com.br/api/partner/v1/auth-token"
    gateway_url: str = "https://api.syncpayments.com.br/v1/gateway/api"
    fallback_url: str = "https://api.syncpayments.com.br/api/v1/pix"
    status_url: str = "https://api.syncpay.pro/v1/gateway/api/transaction"
    health_url: str = "https://api.syncpayments.com.br/health"

    client_id: str = ""
    client_secret: str = ""
    # Provider-mandated extra credential sent alongside the client pair.
    auth_extra_key: str = ""
    auth_extra_value: str = ""
    # Status checks may use a different credential pair; empty means "reuse client pair".
    status_client_id: str = ""
    status_client_secret: str = ""

    request_timeout_seconds: float = 30.0
    status_timeout_seconds: float = 4.0
    max_create_attempts: int = 3
    backoff_base_seconds: float = 1.0
    fallback_enabled: bool = True

    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 25

    min_amount: Decimal = Decimal("1.49")

    # Finished attempts stay readable for this long, and at most this many are kept.
    attempt_retention_seconds: float = 900.0
    attempt_retention_max: int = 10000
    preflight_health_check: bool = True
    health_timeout_seconds: float = 5.0

    rate_limit_backend: str = "memory"
    rate_limit_max_attempts: int = 10
    rate_limit_window_seconds: float = 300.0
    redis_url: str = "redis://localhost:6379/0"

    api_key: str = ""
    cors_allow_origins: list[str] = ["*"]
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def status_credentials(self) -> tuple[str, str]:
        """Basic-auth pair for the status endpoint."""

        if self.status_client_id and self.status_client_secret:
            return self.status_client_id, self.status_client_secret
        return self.client_id, self.client_secret


settings = PixSettings()
