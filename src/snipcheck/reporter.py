# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Staleness classification and report aggregation."""

import logging
import re
from collections.abc import Iterable

from snipcheck.config import ClassificationRules, ValidatorConfig
from snipcheck.model import (
    Category,
    ClassifiedDiagnostic,
    CodeSnippet,
    Diagnostic,
    DocumentError,
    SnippetOutcome,
    UnitResult,
    ValidationReport,
)

logger = logging.getLogger(__name__)


def classify(diagnostic: Diagnostic, rules: ClassificationRules) -> Category:
    """Assign a staleness category to one diagnostic.

    Unresolved symbols point at a guide that is stale against a newer
    framework, deprecated usage still compiles but needs an update, and
    everything else is treated as a transcription mistake.

    Args:
        diagnostic: Diagnostic to classify.
        rules: Language allow-lists of codes and message patterns.

    Returns:
        Diagnostic category.
    """
    if diagnostic.kind == "tool_failure":
        return "tool_failure"
    if diagnostic.kind == "unverifiable":
        return "unverifiable"
    if _matches(diagnostic, rules.unresolved_codes, rules.unresolved_messages):
        return "unresolved_api"
    if _matches(diagnostic, rules.deprecated_codes, rules.deprecated_messages):
        return "deprecated_api"
    return "syntax_error"


def _matches(
    diagnostic: Diagnostic, code_patterns: tuple[str, ...], message_patterns: tuple[str, ...]
) -> bool:
    if diagnostic.code and any(
        re.fullmatch(pattern, diagnostic.code, flags=re.IGNORECASE)
        for pattern in code_patterns
    ):
        return True
    return any(
        re.search(pattern, diagnostic.message, flags=re.IGNORECASE)
        for pattern in message_patterns
    )


class StalenessReporter:
    """Build the validation report from snippets and compile results."""

    def __init__(self, config: ValidatorConfig) -> None:
        """Initialize reporter.

        Args:
            config: Validator configuration holding classification rules.
        """
        self._config = config

    def build(
        self,
        snippets: Iterable[CodeSnippet],
        results: Iterable[UnitResult],
        document_errors: Iterable[DocumentError] = (),
        cancelled: bool = False,
    ) -> ValidationReport:
        """Aggregate every snippet, skipped ones included, into one report.

        Args:
            snippets: All extracted snippets of the run.
            results: Compile results of the non-skipped snippets.
            document_errors: Document-level failures.
            cancelled: Whether the run stopped early.

        Returns:
            Report ordered by document path then ordinal.
        """
        by_key = {result.key: result for result in results}
        outcomes: list[SnippetOutcome] = []
        passed = failed = skipped = 0

        for snippet in sorted(snippets, key=lambda s: s.key):
            if snippet.skip_reason is not None:
                skipped += 1
                outcomes.append(SnippetOutcome(snippet=snippet, status="skipped"))
                continue
            result = by_key.get(snippet.key)
            if result is None:
                logger.warning(
                    f"Snippet has no compile result (document={snippet.document_path} "
                    f"ordinal={snippet.ordinal})"
                )
                result = UnitResult(
                    document_path=snippet.document_path,
                    ordinal=snippet.ordinal,
                    diagnostics=(
                        Diagnostic(
                            severity="error",
                            message="Snippet was not compiled",
                            line=1,
                            column=1,
                            code="NOT_COMPILED",
                            kind="tool_failure",
                            document_path=snippet.document_path,
                            ordinal=snippet.ordinal,
                        ),
                    ),
                )
            classified = self._classify_all(snippet, result.diagnostics)
            has_error = any(item.diagnostic.severity == "error" for item in classified)
            if has_error:
                failed += 1
            else:
                passed += 1
            outcomes.append(
                SnippetOutcome(
                    snippet=snippet,
                    status="failed" if has_error else "passed",
                    diagnostics=classified,
                    cached=result.cached,
                )
            )

        report = ValidationReport(
            checked=passed + failed,
            passed=passed,
            failed=failed,
            skipped=skipped,
            outcomes=tuple(outcomes),
            document_errors=tuple(
                sorted(document_errors, key=lambda e: (e.document_path, e.line))
            ),
            cancelled=cancelled,
        )
        logger.info(
            f"Report built (checked={report.checked} passed={report.passed} "
            f"failed={report.failed} skipped={report.skipped} "
            f"document_errors={len(report.document_errors)})"
        )
        return report

    def _classify_all(
        self, snippet: CodeSnippet, diagnostics: tuple[Diagnostic, ...]
    ) -> tuple[ClassifiedDiagnostic, ...]:
        language = self._config.language(snippet.language)
        rules = language.classification if language else ClassificationRules()
        ordered = sorted(
            diagnostics,
            key=lambda d: (d.line, d.column, d.severity, d.code, d.message),
        )
        return tuple(
            ClassifiedDiagnostic(diagnostic=diagnostic, category=classify(diagnostic, rules))
            for diagnostic in ordered
        )
