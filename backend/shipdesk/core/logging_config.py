from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Dashboard session id, or the HTTP request id inside the tracking API.
session_id_ctx_var: ContextVar[str | None] = ContextVar("session_id", default=None)

_SHIPMENT_FIELDS = ("shipment_id", "tracking_no", "backend_mode")
_HTTP_FIELDS = ("path", "method", "status_code", "duration_ms")
_MAX_TEXT = 5000
_MAX_ITEMS = 100

_RESERVED_RECORD_KEYS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime", "session_id"}


class SessionIdFilter(logging.Filter):
    """Attach the current session id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.session_id = session_id_ctx_var.get() or "-"
        return True


def _json_safe(value: Any, depth: int = 0) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value[:_MAX_TEXT]
    if depth >= 3:
        return "<nested>"
    if isinstance(value, dict):
        items = list(value.items())[:_MAX_ITEMS]
        return {str(key): _json_safe(item, depth + 1) for key, item in items}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item, depth + 1) for item in list(value)[:_MAX_ITEMS]]
    try:
        return str(value)[:_MAX_TEXT]
    except Exception:  # pragma: no cover - defensive
        return "<unserializable>"


def build_log_payload(record: logging.LogRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        "session_id": getattr(record, "session_id", "-"),
    }
    for field in _SHIPMENT_FIELDS + _HTTP_FIELDS:
        value = getattr(record, field, None)
        if value is not None:
            payload[field] = value
    for key, value in vars(record).items():
        if key in _RESERVED_RECORD_KEYS or key in payload or key.startswith("_"):
            continue
        payload[key] = _json_safe(value)
    return payload


class JsonFormatter(logging.Formatter):
    """Structured JSON lines for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        payload = build_log_payload(record)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(json_logs: bool = False, level: int = logging.INFO) -> None:
    """Configure the root logger with a session-id aware formatter."""
    handler = logging.StreamHandler()
    handler.addFilter(SessionIdFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s [%(session_id)s] %(message)s"))

    logging.basicConfig(level=level, handlers=[handler], force=True)
