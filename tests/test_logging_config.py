import json
import logging

from core.logging_config import JsonFormatter, RequestIdFilter, set_request_id


def _record(**extra):
    record = logging.LogRecord("search_collector", logging.WARNING, __file__, 1, "Search failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_lines_carry_request_id_and_known_extras():
    set_request_id("req-123")
    record = _record(topic="python", fallback=True, unrelated="dropped")
    RequestIdFilter().filter(record)

    line = json.loads(JsonFormatter().format(record))
    assert line["message"] == "Search failed"
    assert line["logger"] == "search_collector"
    assert line["request_id"] == "req-123"
    assert line["topic"] == "python"
    assert line["fallback"] is True
    assert "unrelated" not in line
    set_request_id(None)


def test_missing_request_id_is_dash():
    set_request_id(None)
    record = _record()
    RequestIdFilter().filter(record)
    assert json.loads(JsonFormatter().format(record))["request_id"] == "-"
