# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""End-to-end validation run: discovery, extraction, compilation and reporting."""

import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from snipcheck.cache import (
    CacheError,
    PassingUnit,
    RecordRunInput,
    RunStatus,
    SnippetCache,
    unit_hash,
)
from snipcheck.config import ValidatorConfig
from snipcheck.discovery import discover_documents
from snipcheck.extractor import MalformedBlockError, SnippetExtractor, load_document
from snipcheck.model import (
    CodeSnippet,
    Diagnostic,
    DocumentError,
    NormalizedUnit,
    UnitResult,
    ValidationReport,
)
from snipcheck.normalizer import AmbiguousFragmentError, SnippetNormalizer
from snipcheck.reporter import StalenessReporter
from snipcheck.runner import CompileRunner, ResultCollector

logger = logging.getLogger(__name__)

UNVERIFIABLE_CODE = "AMBIGUOUS_FRAGMENT"


@dataclass
class _RunState:
    """Mutable bookkeeping of one run, owned by the producing thread."""

    collector: ResultCollector
    snippets: list[CodeSnippet] = field(default_factory=list)
    document_errors: list[DocumentError] = field(default_factory=list)
    hashes: dict[tuple[str, int], str] = field(default_factory=dict)
    cancelled: bool = False


class ValidationPipeline:
    """Validate every code snippet of a set of documentation files."""

    def __init__(
        self,
        config: ValidatorConfig,
        cache: SnippetCache | None = None,
        cancel_event: threading.Event | None = None,
        runner: CompileRunner | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            config: Validator configuration.
            cache: Optional store of known-good unit hashes.
            cancel_event: Event checked between documents to stop early.
            runner: Compile runner; one is built from ``config`` when omitted.
        """
        self._config = config
        self._cache = cache
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._extractor = SnippetExtractor(config)
        self._normalizer = SnippetNormalizer(config)
        self._runner = runner if runner is not None else CompileRunner(config)
        self._reporter = StalenessReporter(config)

    def run(self, paths: list[str]) -> ValidationReport:
        """Validate the documents named by CLI path arguments.

        Args:
            paths: Files, directories or glob patterns.

        Returns:
            Aggregated validation report.

        Raises:
            DiscoveryError: If a path argument names no document.
            ToolchainNotFoundError: If a language in use has no toolchain.
        """
        documents = discover_documents(paths, self._config)
        state = _RunState(collector=ResultCollector())
        self._runner.run_all(self._produce_units(documents, state), collector=state.collector)
        report = self._reporter.build(
            snippets=state.snippets,
            results=state.collector.results(),
            document_errors=state.document_errors,
            cancelled=state.cancelled,
        )
        self._record(documents, report, state)
        return report

    def extract(self, paths: list[str]) -> tuple[list[CodeSnippet], list[DocumentError]]:
        """List the snippets of the named documents without compiling them.

        Args:
            paths: Files, directories or glob patterns.

        Returns:
            Snippets in document order and document-level failures.
        """
        snippets: list[CodeSnippet] = []
        errors: list[DocumentError] = []
        for path in discover_documents(paths, self._config):
            try:
                document = load_document(path)
            except (OSError, UnicodeDecodeError) as exc:
                errors.append(_unreadable_error(path, exc))
                continue
            try:
                for snippet in self._extractor.extract(document):
                    snippets.append(snippet)
            except MalformedBlockError as exc:
                errors.append(_malformed_error(exc))
        return snippets, errors

    def _produce_units(
        self, documents: list[Path], state: _RunState
    ) -> Iterator[NormalizedUnit]:
        """Yield compilable units document by document.

        Skipped snippets, unverifiable fragments and cache hits are settled
        here and never reach the runner.
        """
        for index, path in enumerate(documents):
            if self._cancel_event.is_set():
                state.cancelled = True
                logger.warning(
                    f"Run cancelled (documents_done={index} documents_total={len(documents)})"
                )
                return
            units = self._document_units(path, state)
            yield from self._without_cache_hits(units, state)

    def _document_units(self, path: Path, state: _RunState) -> list[NormalizedUnit]:
        try:
            document = load_document(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Failed reading document (path={path} error={exc})")
            state.document_errors.append(_unreadable_error(path, exc))
            return []

        units: list[NormalizedUnit] = []
        try:
            for snippet in self._extractor.extract(document):
                state.snippets.append(snippet)
                if snippet.skip_reason is not None:
                    continue
                try:
                    unit = self._normalizer.normalize(snippet)
                except AmbiguousFragmentError as exc:
                    logger.warning(
                        f"Unverifiable snippet (document={snippet.document_path} "
                        f"ordinal={snippet.ordinal} collisions={exc.collisions})"
                    )
                    state.collector.append(_unverifiable_result(snippet, str(exc)))
                    continue
                self._runner.ensure_toolchain(snippet.language)
                units.append(unit)
        except MalformedBlockError as exc:
            state.document_errors.append(_malformed_error(exc))
        logger.debug(
            f"Document extracted (path={document.path} units={len(units)})"
        )
        return units

    def _without_cache_hits(
        self, units: list[NormalizedUnit], state: _RunState
    ) -> list[NormalizedUnit]:
        for unit in units:
            settings = self._config.language(unit.snippet.language)
            if settings is not None:
                state.hashes[unit.snippet.key] = unit_hash(unit, settings)
        if self._cache is None or not units:
            return units
        hashes = [
            state.hashes[unit.snippet.key] for unit in units if unit.snippet.key in state.hashes
        ]
        try:
            known = self._cache.known_good(hashes)
        except CacheError as exc:
            logger.warning(f"Snippet cache disabled for this run (error={exc})")
            self._cache = None
            return units

        pending: list[NormalizedUnit] = []
        for unit in units:
            snippet = unit.snippet
            if state.hashes.get(snippet.key) in known:
                state.collector.append(
                    UnitResult(
                        document_path=snippet.document_path,
                        ordinal=snippet.ordinal,
                        diagnostics=(),
                        cached=True,
                    )
                )
            else:
                pending.append(unit)
        if len(pending) < len(units):
            logger.debug(f"Cache hits (units={len(units)} hits={len(units) - len(pending)})")
        return pending

    def _record(
        self, documents: list[Path], report: ValidationReport, state: _RunState
    ) -> None:
        if self._cache is None:
            return
        status: RunStatus
        if report.cancelled:
            status = "cancelled"
        elif report.exit_code() == 0:
            status = "passed"
        else:
            status = "failed"
        passing_units = [
            PassingUnit(
                md5sum=state.hashes[outcome.snippet.key],
                language=outcome.snippet.language,
                document_path=outcome.snippet.document_path,
                ordinal=outcome.snippet.ordinal,
            )
            for outcome in report.outcomes
            if outcome.status == "passed"
            and not outcome.diagnostics
            and outcome.snippet.key in state.hashes
        ]
        try:
            run_id = self._cache.record_run(
                RecordRunInput(
                    paths=[path.as_posix() for path in documents],
                    checked=report.checked,
                    passed=report.passed,
                    failed=report.failed,
                    skipped=report.skipped,
                    document_error_count=len(report.document_errors),
                    status=status,
                    passing_units=passing_units,
                )
            )
        except CacheError as exc:
            logger.warning(f"Snippet cache not updated (error={exc})")
            return
        logger.info(f"Run recorded (run_id={run_id} passing_units={len(passing_units)})")


def _unverifiable_result(snippet: CodeSnippet, message: str) -> UnitResult:
    return UnitResult(
        document_path=snippet.document_path,
        ordinal=snippet.ordinal,
        diagnostics=(
            Diagnostic(
                severity="error",
                message=message,
                line=1,
                column=1,
                code=UNVERIFIABLE_CODE,
                kind="unverifiable",
                document_path=snippet.document_path,
                ordinal=snippet.ordinal,
            ),
        ),
    )


def _malformed_error(exc: MalformedBlockError) -> DocumentError:
    return DocumentError(document_path=exc.document_path, line=exc.line, message=str(exc))


def _unreadable_error(path: Path, exc: Exception) -> DocumentError:
    return DocumentError(document_path=str(path), line=1, message=f"Cannot read document: {exc}")
