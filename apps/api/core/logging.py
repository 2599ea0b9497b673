"""
Structured logging configuration.

JSON lines for aggregation, plain text for local development. Every JSON
record carries the service name, environment and data source so local-blob
and SQL deployments can be told apart in one index. Credential-like keys in
``extra_fields`` are masked before they reach a handler.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from core.config import settings

SERVICE_NAME = "fitcoach-api"

SENSITIVE_KEYS = frozenset({
    "password",
    "password_hash",
    "access_token",
    "refresh_token",
    "authorization",
    "client_secret",
    "api_key",
})


def mask_sensitive(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: "***" if key.lower() in SENSITIVE_KEYS and value is not None else value
        for key, value in fields.items()
    }


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "data_source": settings.DATA_SOURCE,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Structured context passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(mask_sensitive(record.extra_fields))

        return json.dumps(log_data, default=str)


def setup_logging():
    """
    Configure application-wide logging.

    Uses JSON format in production, text format in development.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            f"%(asctime)s - {SERVICE_NAME}[{settings.DATA_SOURCE}] - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set levels for noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    return root_logger
