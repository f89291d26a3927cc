from __future__ import annotations

import json
import logging
import sys

import pytest

from preflight_validator.logging import (
    StructuredJSONFormatter,
    configure_logging,
    get_log_context,
    probe_context,
    run_context,
)
from preflight_validator.probes.models import ProbeOutcome
from preflight_validator.registry import assemble_registry
from preflight_validator.runner import run_validation
from preflight_validator.utilities.logging_patterns import get_logger, log_operation


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="preflight_validator.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_extras() -> None:
    formatter = StructuredJSONFormatter(sort_keys=True)

    entry = json.loads(formatter.format(_record(component="runner", probe_count=3)))

    assert entry["message"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["component"] == "runner"
    assert entry["probe_count"] == 3


def test_formatter_redacts_sensitive_keys_recursively() -> None:
    formatter = StructuredJSONFormatter()
    record = _record(
        api_key="abc",
        details={"Access-Token": "xyz", "nested": [{"password": "p"}], "user": "dev"},
    )

    entry = json.loads(formatter.format(record))

    assert entry["api_key"] == "[REDACTED]"
    assert entry["details"]["Access-Token"] == "[REDACTED]"
    assert entry["details"]["nested"][0]["password"] == "[REDACTED]"
    assert entry["details"]["user"] == "dev"


def test_formatter_includes_exception_details() -> None:
    formatter = StructuredJSONFormatter()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    entry = json.loads(formatter.format(record))

    assert entry["exception"]["type"] == "RuntimeError"
    assert "boom" in entry["exception"]["traceback"]


def test_correlation_context_is_scoped() -> None:
    with run_context("run-1", registry="bundled") as run_id:
        with probe_context("docker-installed"):
            inner = get_log_context()
        outer = get_log_context()

    assert run_id == "run-1"
    assert inner == {"run_id": "run-1", "registry": "bundled", "probe_id": "docker-installed"}
    assert outer == {"run_id": "run-1", "registry": "bundled"}
    assert get_log_context() == {}


def test_formatter_includes_correlation_context() -> None:
    formatter = StructuredJSONFormatter()

    with run_context("run-2"), probe_context("node-installed"):
        entry = json.loads(formatter.format(_record()))

    assert entry["run_id"] == "run-2"
    assert entry["probe_id"] == "node-installed"


def test_structured_logger_passes_component_and_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("preflight_validator.test", component="tests")

    with caplog.at_level(logging.INFO, logger="preflight_validator.test"):
        logger.info("Probe finished", status="pass")

    record = caplog.records[-1]
    assert record.component == "tests"
    assert record.status == "pass"


def test_log_operation_records_duration(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("preflight_validator.test")

    with caplog.at_level(logging.INFO, logger="preflight_validator.test"):
        with log_operation("validation", logger, probes=2):
            pass

    started, completed = caplog.records[-2:]
    assert started.getMessage() == "Started validation"
    assert completed.getMessage() == "Completed validation"
    assert float(completed.duration_ms) >= 0
    assert completed.probes == 2


def test_configure_logging_does_not_duplicate_console_handler() -> None:
    package_logger = logging.getLogger("preflight_validator")
    before = list(package_logger.handlers)
    try:
        configure_logging()
        configure_logging(verbose=True)
        added = [h for h in package_logger.handlers if h not in before]

        assert len(added) == 1
        assert added[0].stream is sys.stderr
        assert added[0].level == logging.INFO
    finally:
        for handler in package_logger.handlers[:]:
            if handler not in before:
                package_logger.removeHandler(handler)


def test_log_operation_attaches_result_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("preflight_validator.test")

    with caplog.at_level(logging.INFO, logger="preflight_validator.test"):
        with log_operation("validation", logger, probes=3) as summary:
            summary.update(critical=1, overall_pass=False)

    completed = caplog.records[-1]
    assert completed.getMessage() == "Completed validation"
    assert completed.probes == 3
    assert completed.critical == 1
    assert completed.overall_pass is False


def test_log_operation_logs_failure_and_reraises(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("preflight_validator.test")

    with caplog.at_level(logging.INFO, logger="preflight_validator.test"):
        with pytest.raises(KeyError):
            with log_operation("registry load", logger) as summary:
                summary["sections"] = 2
                raise KeyError("sections")

    failed = caplog.records[-1]
    assert failed.levelno == logging.WARNING
    assert failed.getMessage() == "Failed registry load"
    assert failed.error_type == "KeyError"
    assert failed.sections == 2
    assert not any(r.getMessage() == "Completed registry load" for r in caplog.records)


def test_run_validation_logs_outcome_summary(
    caplog: pytest.LogCaptureFixture, make_probe, fixed_clock
) -> None:
    registry = assemble_registry(
        [make_probe("runtime", outcome=ProbeOutcome.failed("missing")), make_probe("extra")]
    )

    with caplog.at_level(logging.INFO, logger="preflight_validator.runner"):
        run_validation(registry, clock=fixed_clock)

    (completed,) = [r for r in caplog.records if r.getMessage() == "Completed validation"]
    assert completed.probes == 2
    assert completed.completed == 2
    assert completed.critical == 1
    assert completed.overall_pass is False
    assert completed.run_id
