"""
Tests for the Tower logging setup.

Validates:
- run_context() scopes run_id per thread and unwinds on exit
- RunIdFilter stamps the active run_id
- VerdictFormatter renders only verdict fields, as JSON or text
- configure_logging() switches output on TOWER_ENV
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from io import StringIO

import pytest

from tower.observability.logging_config import (
    ENV_VAR,
    RunIdFilter,
    VerdictFormatter,
    configure_logging,
    get_run_id,
    run_context,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def _record(msg="verdict_rendered", level=logging.INFO, **fields) -> logging.LogRecord:
    record = logging.LogRecord("tower.service", level, "service.py", 10, msg, (), None)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


# ─── Run context ──────────────────────────────────────────────────────


class TestRunContext:

    def test_scoped_to_block(self):
        assert get_run_id() is None
        with run_context("run-42"):
            assert get_run_id() == "run-42"
        assert get_run_id() is None

    def test_nested_restores_outer(self):
        with run_context("outer"):
            with run_context("inner"):
                assert get_run_id() == "inner"
            assert get_run_id() == "outer"

    def test_empty_run_id_keeps_current(self):
        with run_context("outer"):
            with run_context(None):
                assert get_run_id() == "outer"

    def test_cleared_when_block_raises(self):
        with pytest.raises(RuntimeError):
            with run_context("run-1"):
                raise RuntimeError("boom")
        assert get_run_id() is None

    def test_not_shared_across_threads(self):
        seen = []
        with run_context("main-thread"):
            worker = threading.Thread(target=lambda: seen.append(get_run_id()))
            worker.start()
            worker.join()
        assert seen == [None]

    def test_filter_stamps_active_run(self):
        record = _record()
        with run_context("run-9"):
            assert RunIdFilter().filter(record) is True
        assert record.run_id == "run-9"  # type: ignore[attr-defined]

    def test_filter_keeps_explicit_run_id(self):
        record = _record(run_id="explicit")
        with run_context("from-context"):
            RunIdFilter().filter(record)
        assert record.run_id == "explicit"  # type: ignore[attr-defined]


# ─── Formatter ────────────────────────────────────────────────────────


class TestVerdictFormatter:

    def test_json_line(self):
        parsed = json.loads(VerdictFormatter(as_json=True).format(_record(
            level=logging.WARNING,
            run_id="run-7",
            artefact_type="leads_list",
            verdict="STOP",
            gaps=["NO_PROGRESS"],
        )))
        assert parsed["level"] == "WARNING"
        assert parsed["logger"] == "tower.service"
        assert parsed["message"] == "verdict_rendered"
        assert parsed["verdict"] == "STOP"
        assert parsed["gaps"] == ["NO_PROGRESS"]
        assert parsed["run_id"] == "run-7"
        assert "T" in parsed["timestamp"]

    def test_json_drops_unlisted_and_empty_fields(self):
        parsed = json.loads(VerdictFormatter(as_json=True).format(
            _record(internal="x", confidence=None, duration_ms=1.5)
        ))
        assert "internal" not in parsed
        assert "confidence" not in parsed
        assert parsed["duration_ms"] == 1.5

    def test_json_stays_on_one_line_with_exception(self):
        try:
            raise ValueError("bad artefact")
        except ValueError:
            record = _record("artefact_rejected", error_type="ValueError")
            record.exc_info = sys.exc_info()
        output = VerdictFormatter(as_json=True).format(record)
        assert "\n" not in output
        assert "bad artefact" in json.loads(output)["exception"]

    def test_text_fields_in_fixed_order(self):
        output = VerdictFormatter().format(_record(
            verdict="ACCEPT", run_id="run-1", confidence=88, internal="x",
        ))
        assert "tower.service: verdict_rendered" in output
        assert output.endswith("[run_id=run-1 verdict=ACCEPT confidence=88]")

    def test_text_warning_coloured(self):
        assert "\033[33m" in VerdictFormatter().format(_record(level=logging.WARNING))
        assert "\033[" not in VerdictFormatter().format(_record(level=logging.INFO))


# ─── configure_logging ────────────────────────────────────────────────


class TestConfigureLogging:

    @pytest.mark.parametrize("env, as_json", [
        ("production", True),
        ("Production ", True),
        ("development", False),
        ("test", False),
    ])
    def test_env_selects_output(self, env, as_json):
        configure_logging(env=env)
        [handler] = logging.getLogger().handlers
        assert handler.formatter.as_json is as_json
        assert handler.stream is (sys.stdout if as_json else sys.stderr)

    def test_reads_env_var(self, monkeypatch):
        monkeypatch.setenv(ENV_VAR, "production")
        configure_logging()
        assert logging.getLogger().handlers[0].formatter.as_json

    def test_defaults_to_text(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)
        configure_logging()
        assert not logging.getLogger().handlers[0].formatter.as_json

    def test_replaces_existing_handlers(self):
        logging.getLogger().addHandler(logging.StreamHandler(StringIO()))
        configure_logging(env="development", level=logging.DEBUG)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_json_end_to_end_with_run_id(self):
        configure_logging(env="production")
        stream = StringIO()
        logging.getLogger().handlers[0].stream = stream

        with run_context("run-e2e"):
            logging.getLogger("tower.test").info("verdict_rendered", extra={"verdict": "ACCEPT"})

        parsed = json.loads(stream.getvalue().strip())
        assert parsed["verdict"] == "ACCEPT"
        assert parsed["run_id"] == "run-e2e"
