"""Startup-time helpers for safe config logging."""

from typing import Any

from pydantic import SecretStr

from justpay.common.config import AppSettings
from justpay.common.logging import logger


def _safe_value(value: Any) -> Any:
    """Redact secrets; report missing values as `<unset>`."""

    if isinstance(value, SecretStr):
        return "<redacted>" if value.get_secret_value() else "<unset>"
    if value is None or value == "":
        return "<unset>"
    return value


def startup_config(settings: AppSettings, fields: list[str]) -> dict[str, Any]:
    config: dict[str, Any] = {"service": settings.service_name}
    for name in fields:
        config[name] = _safe_value(getattr(settings, name, None))
    return config


def log_startup_config(settings: AppSettings, fields: list[str]) -> None:
    """Log selected settings for quick troubleshooting."""

    logger.info("startup_config=%s", startup_config(settings, fields))
