from __future__ import annotations

import json
import logging

from hetzner_inventory.logging import JsonFormatter, PlainFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="unit",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_skips_non_serializable_extras() -> None:
    record = _record(good={"a": 1, "b": [1, 2]}, bad={"obj": object()})

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["good"] == {"a": 1, "b": [1, 2]}
    assert "bad" not in payload


def test_plain_formatter_renders_step_phase_and_duration() -> None:
    line = PlainFormatter().format(_record(step="fetch", phase="complete", duration_ms=12))

    assert line.endswith("INFO unit: [fetch:complete] hello (duration_ms=12)")


def test_plain_formatter_appends_error() -> None:
    line = PlainFormatter().format(_record(error="no host found for ip 10.0.0.2"))

    assert line.endswith("hello: no host found for ip 10.0.0.2")
