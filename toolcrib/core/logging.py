from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var

# Loggers whose output duplicates ours or is too chatty at INFO.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.CRITICAL + 1,
    "sqlalchemy.engine": logging.WARNING,
}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the service and request context.

    Structured fields go in ``extra={"extra_data": {...}}``; they are merged at
    the top level so ``loan.created`` events can be filtered on ``loan_id`` or
    ``ticket_number`` directly.
    """

    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "ts": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        for key, var in (("request_id", request_id_ctx_var), ("principal", principal_ctx_var)):
            value = var.get()
            if value:
                payload[key] = value
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            for key, value in extra.items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO", service: str = "toolcrib") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    # Request lines come from RequestIdMiddleware instead of uvicorn.
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
