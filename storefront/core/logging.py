"""
Structured JSON logging with request_id, user_id, order_id when applicable.
Customer emails are masked before they reach the log stream.
"""
from __future__ import annotations

import json
import logging
import time
from contextvars import ContextVar
from typing import Any, Optional

from storefront.config import get_settings

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_PASSTHROUGH_FIELDS = ("user_id", "order_id", "error_code", "sku", "outcome")


def mask_email(value: Any) -> Any:
    """j***@example.com style masking; non-strings pass through."""
    if not isinstance(value, str) or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    return f"{local[:1]}***@{domain}"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S.000Z", time.gmtime(record.created)),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if request_id_ctx.get():
            log["request_id"] = request_id_ctx.get()
        for field in _PASSTHROUGH_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log[field] = str(value)
        if getattr(record, "customer_email", None):
            log["customer_email"] = mask_email(record.customer_email)
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(get_settings().log_level.upper())
    return logger
