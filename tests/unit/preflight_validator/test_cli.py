from __future__ import annotations

import json
import logging
import os
import signal
import threading
import time
from pathlib import Path
from typing import Any

import pytest
import yaml

from preflight_validator import cli
from preflight_validator.cli_args import ListCliArgs, ValidateCliArgs, parse_cli_args
from tests.unit.preflight_validator.probe_helpers import python_argv

PASSING = python_argv("print('tool 2.1.0')")
FAILING = python_argv("import sys; sys.exit(1)")
SLEEPING = python_argv("import time; time.sleep(30)")


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    for key in ("PREFLIGHT_MAX_WORKERS", "PREFLIGHT_REGISTRY_PATH", "PREFLIGHT_LOG_DIR"):
        monkeypatch.delenv(key, raising=False)
    loggers = [
        logging.getLogger(name) for name in ("preflight_validator", "preflight_validator.json")
    ]
    before = {logger.name: list(logger.handlers) for logger in loggers}
    yield
    for logger in loggers:
        for handler in logger.handlers[:]:
            if handler not in before[logger.name]:
                logger.removeHandler(handler)
                handler.close()


def _probe(probe_id: str, argv: list[str], **fields: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": probe_id,
        "description": f"{probe_id} is installed",
        "argv": argv,
        "parser": "version",
        "remediation": f"install {probe_id}",
    }
    entry.update(fields)
    return entry


def _write_registry(path: Path, sections: dict[str, list[dict[str, Any]]]) -> Path:
    document = {
        "sections": [{"name": name, "probes": probes} for name, probes in sections.items()]
    }
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


def test_all_probes_passing_exits_zero(tmp_path: Path, capsys) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {"Core": [_probe("runtime", PASSING)], "Optional": [_probe("extra", PASSING)]},
    )

    exit_code = cli.main(["validate", "--registry", str(registry), "--no-color"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "STATUS: READY" in out
    assert "\033[" not in out


def test_critical_failure_exits_one(tmp_path: Path, capsys) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {
            "Core": [_probe("runtime", FAILING)],
            "Optional": [_probe("extra", PASSING, severity="warning")],
        },
    )

    exit_code = cli.main(["validate", "--registry", str(registry), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["overallPass"] is False
    assert payload["summary"] == {"total": 2, "pass": 1, "warning": 0, "critical": 1}


def test_warning_only_failure_exits_zero(tmp_path: Path, capsys) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {"Core": [_probe("lint", FAILING, severity="warning")]},
    )

    assert cli.main(["validate", "--registry", str(registry)]) == 0
    assert "STATUS: REVIEW" in capsys.readouterr().out


def test_malformed_registry_exits_two_without_running_probes(tmp_path: Path, capsys) -> None:
    marker = tmp_path / "probe-ran"
    touch = python_argv(f"open({str(marker)!r}, 'w').close(); print('1.0.0')")
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {"Core": [_probe("runtime", touch)], "Other": [_probe("runtime", touch)]},
    )

    exit_code = cli.main(["validate", "--registry", str(registry)])

    captured = capsys.readouterr()
    assert exit_code == 2
    assert "Duplicate probe id: runtime" in captured.err
    assert captured.out == ""
    assert not marker.exists()


def test_unknown_section_exits_two(tmp_path: Path, capsys) -> None:
    registry = _write_registry(tmp_path / "registry.yaml", {"Core": [_probe("runtime", PASSING)]})

    exit_code = cli.main(["validate", "--registry", str(registry), "--section", "Cloud"])

    assert exit_code == 2
    assert "Unknown section 'Cloud'" in capsys.readouterr().err


def test_section_filter_runs_only_that_section(tmp_path: Path, capsys) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {"Core": [_probe("runtime", FAILING)], "Optional": [_probe("extra", PASSING)]},
    )

    exit_code = cli.main(
        ["validate", "--registry", str(registry), "--section", "optional", "--json"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [section["name"] for section in payload["sections"]] == ["Optional"]


def test_report_path_writes_json_artifact(tmp_path: Path, capsys) -> None:
    registry = _write_registry(tmp_path / "registry.yaml", {"Core": [_probe("runtime", PASSING)]})
    report_path = tmp_path / "out" / "report.json"

    exit_code = cli.main(
        ["validate", "--registry", str(registry), "--report-path", str(report_path)]
    )

    assert exit_code == 0
    assert json.loads(report_path.read_text(encoding="utf-8"))["overallPass"] is True
    assert "STATUS: READY" in capsys.readouterr().out


def test_invalid_setting_from_environment_exits_two(
    tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    registry = _write_registry(tmp_path / "registry.yaml", {"Core": [_probe("runtime", PASSING)]})
    monkeypatch.setenv("PREFLIGHT_MAX_WORKERS", "0")

    exit_code = cli.main(["validate", "--registry", str(registry)])

    assert exit_code == 2
    assert "max_workers" in capsys.readouterr().err


def test_log_dir_receives_text_and_json_logs(tmp_path: Path) -> None:
    registry = _write_registry(tmp_path / "registry.yaml", {"Core": [_probe("runtime", PASSING)]})
    log_dir = tmp_path / "logs"

    cli.main(["validate", "--registry", str(registry), "--log-dir", str(log_dir), "--json"])

    for handler in logging.getLogger("preflight_validator").handlers:
        handler.flush()
    records = [
        json.loads(line)
        for line in (log_dir / "preflight.jsonl").read_text(encoding="utf-8").splitlines()
    ]
    assert any(record["message"] == "Probe finished" for record in records)
    assert all(record.get("run_id") for record in records if record["message"] == "Probe started")
    assert (log_dir / "preflight.log").exists()


def test_list_prints_probes_without_running_them(tmp_path: Path, capsys) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {
            "Core": [_probe("runtime", FAILING)],
            "Optional": [_probe("extra", PASSING, optional=True, severity="warning")],
        },
    )

    exit_code = cli.main(["list", "--registry", str(registry)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "runtime" in out
    assert "[warning, optional]" in out


def test_list_json_for_bundled_registry(capsys) -> None:
    exit_code = cli.main(["list", "--json", "--section", "Language Runtime"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [probe["id"] for probe in payload["sections"][0]["probes"]] == [
        "node-installed",
        "npm-installed",
    ]


def test_usage_errors_exit_two(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["validate", "--max-workers", "0"])

    assert exc.value.code == 2


def test_parse_cli_args_builds_typed_arguments(tmp_path: Path) -> None:
    args = parse_cli_args(
        ["validate", "--timeout", "2.5", "--max-workers", "4", "--section", " Core "]
    )
    listing = parse_cli_args(["list", "--json"])

    assert isinstance(args, ValidateCliArgs)
    assert args.timeout == 2.5
    assert args.max_workers == 4
    assert args.section == "Core"
    assert args.registry is None
    assert isinstance(listing, ListCliArgs)
    assert listing.json_output


def test_report_path_pointing_to_directory_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        parse_cli_args(["validate", "--report-path", str(tmp_path)])


@pytest.mark.skipif(os.name == "nt", reason="POSIX signal delivery")
@pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
def test_signal_during_validation_renders_incomplete_report_and_exits_two(
    tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch, signum: int
) -> None:
    registry = _write_registry(
        tmp_path / "registry.yaml",
        {"Core": [_probe("runtime", PASSING), _probe("daemon", SLEEPING, timeout=60)]},
    )
    runners: list[cli.ProbeRunner] = []
    real_runner = cli.ProbeRunner

    def _recording_runner(**kwargs: Any) -> cli.ProbeRunner:
        runner = real_runner(**kwargs)
        runners.append(runner)
        return runner

    monkeypatch.setattr(cli, "ProbeRunner", _recording_runner)
    timer = threading.Timer(1.0, signal.raise_signal, args=(signum,))
    started = time.monotonic()
    timer.start()
    try:
        exit_code = cli.main(
            ["validate", "--registry", str(registry), "--no-color", "--max-workers", "2"]
        )
    finally:
        timer.cancel()

    captured = capsys.readouterr()
    assert exit_code == 2
    assert time.monotonic() - started < 10
    assert "(INCOMPLETE - run was cancelled)" in captured.out
    assert "runtime" in captured.out
    assert "daemon" not in captured.out
    assert "validation cancelled" in captured.err
    (runner,) = runners
    assert runner.cancel_event.is_set()
    deadline = time.monotonic() + 5
    while runner.command_runner.active_count and time.monotonic() < deadline:
        time.sleep(0.02)
    assert runner.command_runner.active_count == 0
