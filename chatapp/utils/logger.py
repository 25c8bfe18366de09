"""
Logging Utility.

Routers and services log through ``logging.getLogger(__name__)``. The realtime
layer (session registry, fanout, WebSocket handler) logs JSON lines instead so
delivery outcomes can be filtered by field: each record carries the component
name plus whatever keyword fields the call site passes (user_id, channel,
recipient_status, ...).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once; later calls are no-ops."""
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class StructuredLogger:
    """Emits one JSON object per record on stdout."""

    def __init__(self, component: str, level: str = LOG_LEVEL):
        self.component = component
        self.logger = logging.getLogger(component)
        self.logger.setLevel(getattr(logging, level, logging.INFO))

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)
            # Keep JSON lines out of the plain-text root handler
            self.logger.propagate = False

    def _record(self, level: int, message: str, fields: Dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "component": self.component,
            "message": message,
        }
        record.update(fields)
        return json.dumps(record, default=str)

    def log(self, level: int, message: str, **fields):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._record(level, message, fields))

    def info(self, message: str, **fields):
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self.log(logging.ERROR, message, **fields)


def get_logger(component: str) -> StructuredLogger:
    return StructuredLogger(component)
