import json
import logging

from shipdesk.core.logging_config import JsonFormatter, SessionIdFilter, build_log_payload, session_id_ctx_var


def _record(msg: str = "shipment_written", **extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "shipdesk.test", "levelname": "INFO", "levelno": logging.INFO, "msg": msg})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_payload_carries_session_id_and_structured_fields() -> None:
    token = session_id_ctx_var.set("sess-1")
    try:
        record = _record(shipment_id="s_1", backend_mode="remote", operation="create")
        SessionIdFilter().filter(record)
        payload = build_log_payload(record)
    finally:
        session_id_ctx_var.reset(token)

    assert payload["message"] == "shipment_written"
    assert payload["session_id"] == "sess-1"
    assert payload["shipment_id"] == "s_1"
    assert payload["backend_mode"] == "remote"
    assert payload["operation"] == "create"
    assert payload["level"] == "INFO"


def test_session_id_defaults_to_dash() -> None:
    record = _record()
    SessionIdFilter().filter(record)

    assert build_log_payload(record)["session_id"] == "-"


def test_json_formatter_emits_one_json_object() -> None:
    record = _record(recipients=["a@example.com"], error=ValueError("boom"))

    line = JsonFormatter().format(record)
    payload = json.loads(line)

    assert payload["recipients"] == ["a@example.com"]
    assert payload["error"] == "boom"
    assert "\n" not in line
