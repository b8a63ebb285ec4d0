"""Tests for the JSON formatter and the context adapter."""

import json
import logging
import sys

from src.utils.logging_config import ContextAdapter, JSONFormatter, get_logger


def make_record(**extra):
    record = logging.LogRecord("sage.test", logging.WARNING, __file__, 1, "Persist failed: %s", ("timeout",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_single_line_with_context(self):
        line = JSONFormatter().format(make_record(session_id="s1", scene_arc_id="arc-1", metadata={"wave": 2}))

        assert "\n" not in line
        entry = json.loads(line)
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "sage.test"
        assert entry["message"] == "Persist failed: timeout"
        assert entry["session_id"] == "s1"
        assert entry["scene_arc_id"] == "arc-1"
        assert entry["metadata"] == {"wave": 2}

    def test_unset_fields_are_omitted(self):
        entry = json.loads(JSONFormatter().format(make_record()))
        assert "session_id" not in entry
        assert "exception" not in entry

    def test_exception_text(self):
        try:
            raise ValueError("bad wave")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad wave" in entry["exception"]


class TestContextAdapter:

    def test_bound_context_and_call_extra(self):
        adapter = ContextAdapter(logging.getLogger("sage.test"), session_id="s1")
        _, kwargs = adapter.process("msg", {"extra": {"tool": "set_wave"}})
        assert kwargs["extra"] == {"session_id": "s1", "tool": "set_wave"}

    def test_bind_adds_without_mutating(self):
        base = ContextAdapter(logging.getLogger("sage.test"), session_id="s1")
        bound = base.bind(turn_id="t1")

        assert bound.extra == {"session_id": "s1", "turn_id": "t1"}
        assert base.extra == {"session_id": "s1"}

    def test_call_extra_wins(self):
        adapter = ContextAdapter(logging.getLogger("sage.test"), session_id="s1")
        _, kwargs = adapter.process("msg", {"extra": {"session_id": "s2"}})
        assert kwargs["extra"]["session_id"] == "s2"


def test_get_logger_namespaces():
    assert get_logger("tools").name == "sage.tools"
    assert get_logger("sage.ws.runner").name == "sage.ws.runner"
    assert get_logger("sagebrush").name == "sage.sagebrush"
    assert logging.getLogger("sage").propagate is False
