"""Startup-time helpers for safe config logging."""

from marketpay.common.config import Settings
from marketpay.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def redacted_config(settings: Settings, fields: list[str]) -> dict:
    """Return selected settings with secret-like field names redacted."""

    config: dict = {"service": settings.service_name}
    for name in fields:
        value = getattr(settings, name, None)
        if value in (None, ""):
            config[name] = "<unset>"
        elif any(marker in name.upper() for marker in SECRET_MARKERS):
            config[name] = "<redacted>"
        else:
            config[name] = str(value)
    return config


def log_startup_config(settings: Settings, fields: list[str]) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    logger.info("startup_config=%s", redacted_config(settings, fields))
