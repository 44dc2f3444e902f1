# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Domain models for documentation snippet validation runs."""

from dataclasses import dataclass
from typing import Literal

Severity = Literal["error", "warning"]
DiagnosticKind = Literal["compile", "tool_failure", "unverifiable"]
Category = Literal[
    "syntax_error", "unresolved_api", "deprecated_api", "tool_failure", "unverifiable"
]
FragmentKind = Literal["complete", "declarations", "member", "statements", "expression"]
FenceStyle = Literal["backtick", "tilde", "liquid"]
SnippetStatus = Literal["passed", "failed", "skipped"]

CATEGORY_LABELS: dict[str, str] = {
    "syntax_error": "syntax error",
    "unresolved_api": "unresolved API",
    "deprecated_api": "deprecated API",
    "tool_failure": "tool failure",
    "unverifiable": "unverifiable",
}


@dataclass(frozen=True)
class Heading:
    """Represent one section heading of a documentation file.

    Attributes:
        level: Heading depth (1-6).
        title: Heading text without markup.
        line: Document line of the heading (1-based).
    """

    level: int
    title: str
    line: int


@dataclass(frozen=True)
class DocumentSource:
    """Represent one documentation file read for a run.

    Attributes:
        path: Document path as given to the run.
        raw_text: Full document text.
        headings: Section headings in document order.
    """

    path: str
    raw_text: str
    headings: tuple[Heading, ...]


@dataclass(frozen=True)
class CodeSnippet:
    """Represent one code block extracted from a document.

    Attributes:
        document_path: Path of the owning document.
        language: Declared language tag after alias resolution.
        raw_text: Block content without the fence lines.
        heading_path: Titles of the headings enclosing the block.
        skip: Whether the author opted the block out of validation.
        ordinal: Position of the block within the document (1-based).
        start_line: Document line of the first content line (1-based).
        fence: Fence convention the block was written with.
        skip_reason: Why the block is not compiled; ``None`` when it is.
    """

    document_path: str
    language: str
    raw_text: str
    heading_path: tuple[str, ...]
    skip: bool
    ordinal: int
    start_line: int
    fence: FenceStyle = "backtick"
    skip_reason: str | None = None

    @property
    def key(self) -> tuple[str, int]:
        """Return the run-unique ordering key of the snippet."""
        return (self.document_path, self.ordinal)

    @property
    def line_count(self) -> int:
        """Return the number of lines in the snippet, never below one."""
        return max(1, len(self.raw_text.splitlines()))


@dataclass(frozen=True)
class LineMap:
    """Translate unit positions back to snippet positions.

    Attributes:
        origins: Snippet line for every unit line; ``None`` for wrapper lines.
        snippet_line_count: Number of lines of the original snippet.
        column_offset: Value added to unit columns to get snippet columns.
    """

    origins: tuple[int | None, ...]
    snippet_line_count: int
    column_offset: int = 0

    def translate(self, unit_line: int, column: int) -> tuple[int, int]:
        """Map a unit line and column onto the snippet.

        Wrapper-only lines resolve to the nearest snippet line so a reported
        position always lies inside the snippet.

        Args:
            unit_line: 1-based line in the normalized unit.
            column: 1-based column in the normalized unit.

        Returns:
            Snippet-relative ``(line, column)``.
        """
        last_line = max(1, self.snippet_line_count)
        index = unit_line - 1
        if 0 <= index < len(self.origins):
            origin = self.origins[index]
            if origin is not None:
                return min(origin, last_line), max(1, column + self.column_offset)
        mapped = [
            (position, origin)
            for position, origin in enumerate(self.origins)
            if origin is not None
        ]
        if not mapped:
            return 1, 1
        before = [origin for position, origin in mapped if position < index]
        if before:
            return min(before[-1], last_line), 1
        return min(mapped[0][1], last_line), 1


@dataclass(frozen=True)
class NormalizedUnit:
    """Represent a snippet wrapped into an independently compilable unit.

    Attributes:
        snippet: Snippet the unit was built from.
        text: Full unit text handed to the compiler.
        fragment_kind: Classification that selected the wrapper.
        line_map: Unit-to-snippet position translation.
        wrapper_identifiers: Identifiers the wrapper introduced.
    """

    snippet: CodeSnippet
    text: str
    fragment_kind: FragmentKind
    line_map: LineMap
    wrapper_identifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class Diagnostic:
    """Represent one compiler or analyzer message for a snippet.

    Attributes:
        severity: Message severity.
        message: Message text.
        line: Snippet-relative line (1-based).
        column: Snippet-relative column (1-based).
        code: Analyzer code, empty when the tool reports none.
        kind: Origin of the diagnostic.
        document_path: Path of the originating snippet's document.
        ordinal: Ordinal of the originating snippet.
    """

    severity: Severity
    message: str
    line: int
    column: int
    code: str
    kind: DiagnosticKind
    document_path: str
    ordinal: int


@dataclass(frozen=True)
class UnitResult:
    """Represent the compile outcome of one snippet."""

    document_path: str
    ordinal: int
    diagnostics: tuple[Diagnostic, ...]
    cached: bool = False

    @property
    def key(self) -> tuple[str, int]:
        return (self.document_path, self.ordinal)


@dataclass(frozen=True)
class ClassifiedDiagnostic:
    """Represent a diagnostic with its staleness category."""

    diagnostic: Diagnostic
    category: Category

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self.category]


@dataclass(frozen=True)
class SnippetOutcome:
    """Represent the final validation outcome of one snippet."""

    snippet: CodeSnippet
    status: SnippetStatus
    diagnostics: tuple[ClassifiedDiagnostic, ...] = ()
    cached: bool = False


@dataclass(frozen=True)
class DocumentError:
    """Represent a document-level failure such as an unterminated fence."""

    document_path: str
    line: int
    message: str


@dataclass(frozen=True)
class ValidationReport:
    """Represent the aggregated result of one validation run.

    Attributes:
        checked: Snippets handed to compilation (passed plus failed).
        passed: Snippets without error diagnostics.
        failed: Snippets with at least one error diagnostic.
        skipped: Snippets excluded from compilation.
        outcomes: Per-snippet outcomes ordered by document path then ordinal.
        document_errors: Document-level failures ordered by path then line.
        cancelled: Whether the run stopped before all documents were processed.
    """

    checked: int
    passed: int
    failed: int
    skipped: int
    outcomes: tuple[SnippetOutcome, ...]
    document_errors: tuple[DocumentError, ...] = ()
    cancelled: bool = False

    @property
    def total(self) -> int:
        return self.checked + self.skipped

    def exit_code(self) -> int:
        """Return the process exit code the report calls for."""
        if self.cancelled:
            return 2
        if self.failed > 0 or self.document_errors:
            return 1
        return 0

    def grouped(
        self,
    ) -> list[tuple[str, list[tuple[tuple[str, ...], list[SnippetOutcome]]]]]:
        """Group outcomes by document, then by heading path.

        Returns:
            Documents in path order, each with heading groups in order of
            first appearance and outcomes in ordinal order.
        """
        by_document: dict[str, list[SnippetOutcome]] = {}
        for outcome in self.outcomes:
            by_document.setdefault(outcome.snippet.document_path, []).append(outcome)

        grouped: list[tuple[str, list[tuple[tuple[str, ...], list[SnippetOutcome]]]]] = []
        for document_path in sorted(by_document):
            outcomes = sorted(by_document[document_path], key=lambda o: o.snippet.ordinal)
            sections: dict[tuple[str, ...], list[SnippetOutcome]] = {}
            for outcome in outcomes:
                sections.setdefault(outcome.snippet.heading_path, []).append(outcome)
            grouped.append((document_path, list(sections.items())))
        return grouped
