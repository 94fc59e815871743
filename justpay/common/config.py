"""Central environment-driven settings for the payment API process.

Loaded once at startup. Behavior is controlled by environment variables
(see `.env.example`).
"""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "justpay-api"
    environment: str = "production"
    log_level: str = "INFO"
    stripe_secret_key: SecretStr = SecretStr("")
    stripe_webhook_secret: SecretStr | None = None
    stripe_api_version: str | None = None
    stripe_max_network_retries: int = 2
    allowed_origins: str = "http://localhost:3000"
    public_base_url: str | None = None
    platform_fee_percentage: float = 2.9
    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = AppSettings()
