# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Parsing of compiler and analyzer output into raw diagnostic records."""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MACHINE_FIELD_COUNT = 8

_SEVERITY_ALIASES: dict[str, str] = {
    "error": "error",
    "fatal": "error",
    "warning": "warning",
    "warn": "warning",
    "info": "warning",
    "hint": "warning",
    "lint": "warning",
}


@dataclass(frozen=True)
class RawDiagnostic:
    """Represent one diagnostic as printed by a tool, in unit coordinates.

    Attributes:
        severity: Normalized severity (``error`` or ``warning``).
        code: Tool-specific diagnostic code.
        file: File the tool attributed the diagnostic to.
        line: Unit line (1-based).
        column: Unit column (1-based).
        message: Diagnostic message.
    """

    severity: str
    code: str
    file: str
    line: int
    column: int
    message: str


def escape_machine_field(value: str) -> str:
    """Escape a value for the pipe-delimited machine format."""
    return value.replace("\\", "\\\\").replace("|", "\\|").replace("\n", " ")


def format_machine_record(
    severity: str,
    kind: str,
    code: str,
    file: str,
    line: int,
    column: int,
    length: int,
    message: str,
) -> str:
    """Format one machine-format record.

    The layout is ``SEVERITY|TYPE|CODE|FILE|LINE|COL|LENGTH|MESSAGE``, as
    emitted by ``dart analyze --format=machine``.
    """
    fields = [
        severity.upper(),
        kind.upper(),
        code.upper(),
        file,
        str(line),
        str(column),
        str(length),
        message,
    ]
    return "|".join(escape_machine_field(value) for value in fields)


def split_machine_record(line: str) -> list[str]:
    """Split a machine-format line on unescaped pipes."""
    fields: list[str] = []
    current: list[str] = []
    escaped = False
    for char in line:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "|":
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def parse_machine_output(output: str) -> list[RawDiagnostic]:
    """Parse pipe-delimited machine-format output.

    Lines that are not machine records (progress text, summaries) are ignored.

    Args:
        output: Combined tool output.

    Returns:
        Parsed diagnostics in output order.
    """
    diagnostics: list[RawDiagnostic] = []
    for line in output.splitlines():
        fields = split_machine_record(line.strip())
        if len(fields) < MACHINE_FIELD_COUNT:
            continue
        severity = _SEVERITY_ALIASES.get(fields[0].strip().lower())
        if severity is None:
            continue
        try:
            line_number = int(fields[4])
            column = int(fields[5])
        except ValueError:
            logger.debug(f"Ignoring malformed machine record (line={line!r})")
            continue
        diagnostics.append(
            RawDiagnostic(
                severity=severity,
                code=fields[2].strip(),
                file=fields[3],
                line=line_number,
                column=column,
                message="|".join(fields[7:]).strip(),
            )
        )
    return diagnostics


def parse_regex_output(output: str, pattern: str) -> list[RawDiagnostic]:
    """Parse tool output with a named-group pattern.

    The pattern must define ``line`` and ``message`` groups and may define
    ``severity``, ``code``, ``file`` and ``column``. A missing severity
    defaults to ``error``.

    Args:
        output: Combined tool output.
        pattern: Regular expression applied to each output line.

    Returns:
        Parsed diagnostics in output order.
    """
    compiled = re.compile(pattern)
    diagnostics: list[RawDiagnostic] = []
    for line in output.splitlines():
        match = compiled.search(line)
        if match is None:
            continue
        groups = match.groupdict()
        severity = _SEVERITY_ALIASES.get((groups.get("severity") or "error").lower())
        if severity is None:
            continue
        try:
            line_number = int(groups.get("line") or 1)
            column = int(groups.get("column") or 1)
        except ValueError:
            continue
        diagnostics.append(
            RawDiagnostic(
                severity=severity,
                code=(groups.get("code") or "").strip(),
                file=groups.get("file") or "",
                line=line_number,
                column=column,
                message=(groups.get("message") or "").strip(),
            )
        )
    return diagnostics
