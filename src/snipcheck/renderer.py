# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Deterministic renderings of validation reports."""

import json
import logging
from typing import Any, Literal, TextIO

from rich.console import Console
from rich.style import Style
from rich.table import Table
from rich.text import Text

from snipcheck.model import (
    ClassifiedDiagnostic,
    DocumentError,
    SnippetOutcome,
    ValidationReport,
)

logger = logging.getLogger(__name__)

ReportFormat = Literal["text", "json", "github"]
REPORT_FORMATS: tuple[str, ...] = ("text", "json", "github")
CONSOLE_WIDTH = 120

TABLE_COLUMN_RATIOS: dict[str, int] = {
    "ordinal": 1,
    "line": 1,
    "status": 1,
    "category": 2,
    "message": 8,
}


def summary_fields(report: ValidationReport) -> dict[str, Any]:
    """Return the report totals in display order."""
    if report.cancelled:
        status = "cancelled"
    elif report.exit_code() == 0:
        status = "passed"
    else:
        status = "failed"
    return {
        "total": report.total,
        "checked": report.checked,
        "passed": report.passed,
        "failed": report.failed,
        "skipped": report.skipped,
        "document_errors": len(report.document_errors),
        "status": status,
    }


def document_line(outcome: SnippetOutcome, item: ClassifiedDiagnostic) -> int:
    """Translate a snippet-relative diagnostic line into a document line."""
    return outcome.snippet.start_line + item.diagnostic.line - 1


class ReportRenderer:
    """Render a validation report as console text, JSON or CI annotations."""

    def __init__(self, report_format: ReportFormat = "text", width: int = CONSOLE_WIDTH) -> None:
        """Initialize renderer.

        Args:
            report_format: Output format.
            width: Fixed console width for text output.

        Raises:
            ValueError: If the format is not supported.
        """
        if report_format not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format: {report_format}")
        self._format = report_format
        self._width = width

    def render(self, report: ValidationReport, stream: TextIO) -> None:
        """Write the rendering of a report to a stream.

        Args:
            report: Report to render.
            stream: Output stream.
        """
        if self._format == "json":
            self._render_json(report, stream)
        elif self._format == "github":
            self._render_github(report, stream)
        else:
            self._render_text(report, stream)

    def _render_text(self, report: ValidationReport, stream: TextIO) -> None:
        console = Console(
            file=stream,
            force_terminal=False,
            color_system="truecolor",
            width=self._width,
        )
        errors_by_document = _errors_by_document(report.document_errors)
        sections_by_document = dict(report.grouped())
        for document_path in sorted(set(sections_by_document) | set(errors_by_document)):
            console.rule(Text(document_path), style=Style(color="cyan"), characters="-")
            for error in errors_by_document.get(document_path, []):
                console.print(
                    f"document_error line={error.line} message={error.message}",
                    markup=False,
                    highlight=False,
                )
            for heading_path, outcomes in sections_by_document.get(document_path, []):
                console.print(
                    " > ".join(heading_path) if heading_path else "(no heading)",
                    markup=False,
                    highlight=False,
                    style=Style(bold=True),
                )
                console.print(_build_table(outcomes))
        fields = " ".join(f"{key}={value}" for key, value in summary_fields(report).items())
        console.print(fields, markup=False, highlight=False)

    def _render_json(self, report: ValidationReport, stream: TextIO) -> None:
        errors_by_document = _errors_by_document(report.document_errors)
        sections_by_document = dict(report.grouped())
        documents = []
        for document_path in sorted(set(sections_by_document) | set(errors_by_document)):
            documents.append(
                {
                    "path": document_path,
                    "errors": [
                        {"line": error.line, "message": error.message}
                        for error in errors_by_document.get(document_path, [])
                    ],
                    "sections": [
                        {
                            "heading_path": list(heading_path),
                            "snippets": [_outcome_payload(outcome) for outcome in outcomes],
                        }
                        for heading_path, outcomes in sections_by_document.get(
                            document_path, []
                        )
                    ],
                }
            )
        payload = {"summary": summary_fields(report), "documents": documents}
        console = Console(file=stream, force_terminal=False, color_system="truecolor")
        console.print(
            json.dumps(payload, indent=2, sort_keys=True),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    def _render_github(self, report: ValidationReport, stream: TextIO) -> None:
        for error in report.document_errors:
            stream.write(
                f"::error file={_escape_property(error.document_path)},"
                f"line={error.line},title=malformed block::{_escape_data(error.message)}\n"
            )
        for outcome in report.outcomes:
            snippet = outcome.snippet
            for item in outcome.diagnostics:
                diagnostic = item.diagnostic
                title = f"{item.label} (snippet {snippet.ordinal})"
                stream.write(
                    f"::{diagnostic.severity} file={_escape_property(snippet.document_path)},"
                    f"line={document_line(outcome, item)},col={diagnostic.column},"
                    f"title={_escape_property(title)}::{_escape_data(diagnostic.message)}\n"
                )
        fields = " ".join(f"{key}={value}" for key, value in summary_fields(report).items())
        stream.write(f"{fields}\n")


def _build_table(outcomes: list[SnippetOutcome]) -> Table:
    table = Table(show_header=True, show_lines=False, expand=True)
    table.add_column("#", ratio=TABLE_COLUMN_RATIOS["ordinal"], justify="right")
    table.add_column("line", ratio=TABLE_COLUMN_RATIOS["line"], justify="right")
    table.add_column("status", ratio=TABLE_COLUMN_RATIOS["status"], overflow="fold")
    table.add_column("category", ratio=TABLE_COLUMN_RATIOS["category"], overflow="fold")
    table.add_column("message", ratio=TABLE_COLUMN_RATIOS["message"], overflow="fold")
    for outcome in outcomes:
        snippet = outcome.snippet
        if not outcome.diagnostics:
            detail = snippet.skip_reason or snippet.language
            table.add_row(
                Text(str(snippet.ordinal)),
                Text(str(snippet.start_line)),
                Text(outcome.status),
                Text(""),
                Text(detail),
            )
            continue
        for item in outcome.diagnostics:
            diagnostic = item.diagnostic
            code = f" [{diagnostic.code}]" if diagnostic.code else ""
            table.add_row(
                Text(str(snippet.ordinal)),
                Text(str(document_line(outcome, item))),
                Text(outcome.status if diagnostic.severity == "error" else diagnostic.severity),
                Text(item.label),
                Text(f"{diagnostic.message}{code}"),
            )
    return table


def _outcome_payload(outcome: SnippetOutcome) -> dict[str, Any]:
    snippet = outcome.snippet
    return {
        "ordinal": snippet.ordinal,
        "language": snippet.language,
        "start_line": snippet.start_line,
        "status": outcome.status,
        "skip_reason": snippet.skip_reason,
        "diagnostics": [
            {
                "severity": item.diagnostic.severity,
                "category": item.category,
                "code": item.diagnostic.code,
                "message": item.diagnostic.message,
                "line": item.diagnostic.line,
                "column": item.diagnostic.column,
                "document_line": document_line(outcome, item),
            }
            for item in outcome.diagnostics
        ],
    }


def _errors_by_document(errors: tuple[DocumentError, ...]) -> dict[str, list[DocumentError]]:
    grouped: dict[str, list[DocumentError]] = {}
    for error in errors:
        grouped.setdefault(error.document_path, []).append(error)
    return grouped


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(":", "%3A").replace(",", "%2C")
