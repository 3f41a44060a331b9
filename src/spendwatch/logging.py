from __future__ import annotations

import json
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LEVELS = ("debug", "info", "warning", "error")


class SpendLogger:
    """Structured JSON logger with correlation ids."""

    def __init__(self, context: str, correlation_id: Optional[str] = None):
        self.context = context
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def child(self, context: str) -> "SpendLogger":
        """Logger for a sub-component sharing this correlation id."""
        return SpendLogger(context, correlation_id=self.correlation_id)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("debug", message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("info", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("warning", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("error", message, **kwargs)

    def log(self, level: str, message: str, **kwargs: Any) -> None:
        level = level.lower()
        if level not in LEVELS:
            level = "info"
        if level == "debug" and not self._debug_enabled():
            return
        self._emit(level, message, **kwargs)

    def _emit(self, level: str, message: str, **kwargs: Any) -> None:
        """Emit one JSON line. Logging must never break the caller."""
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "message": message,
        }
        payload.update(self._sanitize(kwargs))

        try:
            sys.stderr.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
            sys.stderr.flush()
        except (OSError, ValueError):
            pass

    @staticmethod
    def _debug_enabled() -> bool:
        return os.environ.get("SPENDWATCH_LOG_LEVEL", "").upper() == "DEBUG"

    @staticmethod
    def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
        redacted: Dict[str, Any] = {}
        for key, value in fields.items():
            if SpendLogger._is_sensitive_key(key):
                redacted[key] = "***"
            else:
                redacted[key] = value
        return redacted

    @staticmethod
    def _is_sensitive_key(key: str) -> bool:
        lowered = key.lower()
        return any(token in lowered for token in ("token", "secret", "password", "api_key", "apikey"))
