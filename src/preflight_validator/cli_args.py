from __future__ import annotations

import argparse
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from preflight_validator import __version__


@dataclass(frozen=True)
class ValidateCliArgs:
    section: str | None
    json_output: bool
    registry: Path | None
    timeout: float | None
    total_timeout: float | None
    max_workers: int | None
    report_path: Path | None
    no_color: bool
    verbose: bool
    log_dir: Path | None


@dataclass(frozen=True)
class ListCliArgs:
    section: str | None
    json_output: bool
    registry: Path | None
    verbose: bool


CliArgs = ValidateCliArgs | ListCliArgs


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number of seconds, got '{value}'") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero, got {value}")
    return number


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{value}'") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def _add_registry_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--registry",
        type=Path,
        help="YAML registry declaration (default: bundled workstation registry)",
    )
    parser.add_argument("--section", help="Only use probes from this section (case-insensitive)")
    parser.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Emit a machine-readable JSON document on stdout",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log probe progress to stderr")


def add_validate_arguments(parser: argparse.ArgumentParser) -> None:
    _add_registry_arguments(parser)
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        help="Default per-probe timeout in seconds (also: PREFLIGHT_PROBE_TIMEOUT)",
    )
    parser.add_argument(
        "--total-timeout",
        type=_positive_float,
        help="Upper bound on the whole run in seconds (also: PREFLIGHT_TOTAL_TIMEOUT)",
    )
    parser.add_argument(
        "--max-workers",
        type=_positive_int,
        help="Maximum probes running concurrently (also: PREFLIGHT_MAX_WORKERS)",
    )
    parser.add_argument(
        "--report-path",
        type=Path,
        help="Also write the JSON report to this file",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for rotating text and JSON-lines logs (also: PREFLIGHT_LOG_DIR)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="preflight-validator",
        description="Validate that a workstation has the tools a developer environment needs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    validate = subparsers.add_parser("validate", help="Run the probes and print a report")
    add_validate_arguments(validate)

    listing = subparsers.add_parser("list", help="Show registered probes without running them")
    _add_registry_arguments(listing)
    return parser


def parse_cli_args(argv: Sequence[str] | None = None) -> CliArgs:
    parser = build_parser()
    args = parser.parse_args(argv)
    return _normalize_args(parser, args)


def _normalize_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> CliArgs:
    registry = _normalize_registry(parser, args.registry)
    section = args.section.strip() if args.section else None
    if args.section is not None and not section:
        parser.error("--section must not be empty")

    if args.command == "list":
        return ListCliArgs(
            section=section,
            json_output=bool(args.json_output),
            registry=registry,
            verbose=bool(args.verbose),
        )

    return ValidateCliArgs(
        section=section,
        json_output=bool(args.json_output),
        registry=registry,
        timeout=args.timeout,
        total_timeout=args.total_timeout,
        max_workers=args.max_workers,
        report_path=_normalize_report_path(parser, args.report_path),
        no_color=bool(args.no_color),
        verbose=bool(args.verbose),
        log_dir=args.log_dir.expanduser() if args.log_dir is not None else None,
    )


def _normalize_registry(parser: argparse.ArgumentParser, value: Path | None) -> Path | None:
    if value is None:
        return None
    resolved = value.expanduser().resolve(strict=False)
    if resolved.exists() and resolved.is_dir():
        parser.error(f"Registry must be a file, got directory: {resolved}")
    return resolved


def _normalize_report_path(parser: argparse.ArgumentParser, value: Path | None) -> Path | None:
    if value is None:
        return None
    resolved = value.expanduser().resolve(strict=False)
    if resolved.exists() and resolved.is_dir():
        parser.error(f"Report path must be a file, got directory: {resolved}")
    return resolved
