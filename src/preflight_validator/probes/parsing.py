"""Tolerant parsers for semi-structured tool output.

Every parser returns a ``ParseResult`` instead of raising, so a tool that
prints something unexpected is reported as unparsable rather than crashing
the probe.
"""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any

MAX_RAW_OUTPUT_CHARS = 2000
TRUNCATION_SUFFIX = "..."

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
_VERSION_PATTERN = re.compile(r"(?<![\w.])v?(\d+(?:\.\d+){1,3})(?![\d])")


@dataclass(frozen=True)
class Ok:
    detail: str


@dataclass(frozen=True)
class Unparsable:
    raw: str
    reason: str = "output did not match the expected shape"


ParseResult = Ok | Unparsable


def decode_output(data: bytes | None) -> str:
    """Decode raw process output, including UTF-16 text emitted by Windows tools."""
    if not data:
        return ""
    if data.startswith(codecs.BOM_UTF16_LE):
        text = data[len(codecs.BOM_UTF16_LE) :].decode("utf-16-le", errors="replace")
    elif data.startswith(codecs.BOM_UTF16_BE):
        text = data[len(codecs.BOM_UTF16_BE) :].decode("utf-16-be", errors="replace")
    elif b"\x00" in data and len(data) % 2 == 0:
        text = data.decode("utf-16-le", errors="replace")
    else:
        text = data.decode("utf-8", errors="replace")
    return clean_text(text)


def clean_text(text: str) -> str:
    text = _ANSI_ESCAPE.sub("", text).replace("\x00", "")
    lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
    return "\n".join(lines).strip()


def truncate_raw(text: str | None, limit: int = MAX_RAW_OUTPUT_CHARS) -> str | None:
    if text is None:
        return None
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX


def parse_version(output: str) -> ParseResult:
    """Extract the first dotted numeric version from ``output``."""
    match = _VERSION_PATTERN.search(output or "")
    if match is None:
        return Unparsable(output, "no version number found")
    return Ok(match.group(1))


def version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def version_at_least(version: str, minimum: str) -> bool:
    """Compare dotted versions numerically, padding the shorter with zeros."""
    current = version_tuple(version)
    required = version_tuple(minimum)
    width = max(len(current), len(required))
    current += (0,) * (width - len(current))
    required += (0,) * (width - len(required))
    return current >= required


def parse_json_field(output: str, path: str) -> ParseResult:
    """Return the value at dotted ``path`` of a JSON document as a string."""
    try:
        document: Any = json.loads(output)
    except (TypeError, ValueError):
        return Unparsable(output, "output is not valid JSON")

    value: Any = document
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return Unparsable(output, f"field '{path}' not present")

    if value is None:
        return Unparsable(output, f"field '{path}' is null")
    if isinstance(value, bool):
        return Ok("true" if value else "false")
    if isinstance(value, (dict, list)):
        return Ok(json.dumps(value, sort_keys=True))
    return Ok(str(value).strip())


def parse_contains(output: str, pattern: str, detail_group: int | str | None = None) -> ParseResult:
    """Match ``pattern`` case-insensitively, optionally returning a capture group."""
    match = re.search(pattern, output or "", flags=re.IGNORECASE | re.MULTILINE)
    if match is None:
        return Unparsable(output, f"pattern '{pattern}' not found")
    if detail_group is None:
        return Ok(match.group(0).strip())
    try:
        group = match.group(detail_group)
    except IndexError:
        return Unparsable(output, f"pattern group '{detail_group}' not defined")
    if group is None:
        return Unparsable(output, f"pattern group '{detail_group}' did not participate")
    return Ok(group.strip())


__all__ = [
    "MAX_RAW_OUTPUT_CHARS",
    "Ok",
    "ParseResult",
    "Unparsable",
    "clean_text",
    "decode_output",
    "parse_contains",
    "parse_json_field",
    "parse_version",
    "truncate_raw",
    "version_at_least",
    "version_tuple",
]
