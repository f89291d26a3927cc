"""
Command-line entry point.

Exit codes:

- 0: every probe passed or only produced warnings
- 1: at least one critical failure
- 2: usage or configuration error, malformed registry, cancellation, internal error
"""

from __future__ import annotations

import json
import os
import signal
import sys
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from dotenv import load_dotenv

from preflight_validator.classifier import SeverityPolicy
from preflight_validator.cli_args import ListCliArgs, ValidateCliArgs, parse_cli_args
from preflight_validator.errors import (
    PreflightError,
    ValidationCancelledError,
    log_error,
)
from preflight_validator.logging import configure_logging
from preflight_validator.registry import ProbeRegistry
from preflight_validator.registry_loader import load_registry
from preflight_validator.report import (
    FileReportArtifactSink,
    ReportArtifactSink,
    ReportSinkError,
    StdoutReportArtifactSink,
    exit_code_for,
    render_json,
    render_text,
)
from preflight_validator.runner import ProbeRunner, run_validation
from preflight_validator.settings import ColorMode, ValidatorSettings, get_settings
from preflight_validator.utilities.logging_patterns import get_logger

logger = get_logger(__name__, component="cli")

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_ERROR = 2


def main(argv: Sequence[str] | None = None) -> int:
    """Entry-point for the ``preflight-validator`` command."""
    args = parse_cli_args(argv)
    load_dotenv()
    try:
        if isinstance(args, ListCliArgs):
            return _run_list(args)
        return _run_validate(args)
    except PreflightError as exc:
        log_error(exc)
        _error(str(exc))
        return EXIT_ERROR
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected internal error")
        _error(f"internal error: {type(exc).__name__}: {exc}")
        return EXIT_ERROR


def _run_validate(args: ValidateCliArgs) -> int:
    settings = get_settings(
        probe_timeout=args.timeout,
        total_timeout=args.total_timeout,
        max_workers=args.max_workers,
        registry_path=args.registry,
        log_dir=args.log_dir,
    )
    configure_logging(verbose=args.verbose, log_dir=settings.log_dir)
    registry = _load(settings, args.section)

    runner = ProbeRunner(max_workers=settings.max_workers, total_timeout=settings.total_timeout)
    cancelled = False
    with _cancel_on_signals(runner):
        try:
            report = run_validation(registry, runner=runner)
        except ValidationCancelledError as exc:
            log_error(exc)
            report = exc.report
            cancelled = True

    if args.json_output:
        rendered = render_json(report)
    else:
        rendered = render_text(report, color=_use_color(settings, args.no_color))
    _write_artifact(StdoutReportArtifactSink(), rendered)
    if args.report_path is not None:
        _write_artifact(FileReportArtifactSink(args.report_path), render_json(report))

    if cancelled:
        _error("validation cancelled; the report above is incomplete")
        return EXIT_ERROR
    return EXIT_OK if exit_code_for(report) == 0 else EXIT_CRITICAL


def _run_list(args: ListCliArgs) -> int:
    settings = get_settings(registry_path=args.registry)
    configure_logging(verbose=args.verbose, log_dir=settings.log_dir)
    registry = _load(settings, args.section)
    if args.json_output:
        _write_stdout(json.dumps(_listing_payload(registry), indent=2, ensure_ascii=False))
    else:
        _write_stdout(_render_listing(registry))
    return EXIT_OK


def _load(settings: ValidatorSettings, section: str | None) -> ProbeRegistry:
    registry = load_registry(settings.registry_path, default_timeout=settings.probe_timeout)
    if section:
        registry = registry.restrict(section)
    return registry


def _listing_payload(registry: ProbeRegistry) -> dict[str, Any]:
    policy: SeverityPolicy = registry.policy
    sections: dict[str, list[dict[str, Any]]] = {}
    for probe in registry.all_probes():
        sections.setdefault(probe.section, []).append(
            {
                "id": probe.id,
                "description": probe.description,
                "severityIfFailed": policy.failure_severity(probe).value,
                "optional": probe.optional,
                "timeoutSeconds": probe.timeout,
            }
        )
    return {"sections": [{"name": name, "probes": probes} for name, probes in sections.items()]}


def _render_listing(registry: ProbeRegistry) -> str:
    lines: list[str] = []
    for section in _listing_payload(registry)["sections"]:
        if lines:
            lines.append("")
        lines.append(section["name"])
        for probe in section["probes"]:
            flags = probe["severityIfFailed"]
            if probe["optional"]:
                flags += ", optional"
            lines.append(f"  {probe['id']:<28} [{flags}] {probe['description']}")
    return "\n".join(lines)


def _use_color(settings: ValidatorSettings, no_color: bool) -> bool:
    if no_color or settings.color is ColorMode.NEVER or os.environ.get("NO_COLOR"):
        return False
    if settings.color is ColorMode.ALWAYS:
        return True
    return sys.stdout.isatty()


@contextmanager
def _cancel_on_signals(runner: ProbeRunner) -> Iterator[None]:
    """Route SIGINT/SIGTERM to ``runner.cancel`` while a run is in progress."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle_signal(signum: int, _frame: Any) -> None:
        logger.warning("Received signal, cancelling validation", signal=signum)
        runner.cancel()

    handled = [signal.SIGINT, signal.SIGTERM]
    previous = {signum: signal.getsignal(signum) for signum in handled}
    for signum in handled:
        signal.signal(signum, _handle_signal)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)


def _write_artifact(sink: ReportArtifactSink, payload: str) -> None:
    try:
        result = sink.write(payload)
    except ReportSinkError as exc:
        _error(f"{exc}: {exc.__cause__}" if exc.__cause__ else str(exc))
        return
    logger.info("Report written", destination=result.description)


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.write("\n")
    sys.stdout.flush()


def _error(message: str) -> None:
    print(f"preflight-validator: error: {message}", file=sys.stderr)


__all__ = ["EXIT_CRITICAL", "EXIT_ERROR", "EXIT_OK", "main"]
