# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Code block extraction from Markdown documentation sources."""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from snipcheck.config import ValidatorConfig
from snipcheck.model import CodeSnippet, DocumentSource, FenceStyle, Heading

logger = logging.getLogger(__name__)

_ATX_HEADING = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_FENCE_OPEN = re.compile(r"^(?P<indent>[ \t]*)(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
_LIQUID_OPEN = re.compile(
    r"^[ \t]*\{%-?\s*(?P<tag>prettify|highlight)\s+(?P<info>[^%]*?)\s*-?%\}[ \t]*$"
)
_FRONT_MATTER_DELIMITERS = ("---", "...")
_SKIP_INFO_TOKENS = {"skip", "{skip}", "no-check"}


class MalformedBlockError(RuntimeError):
    """Represent a code block opened but never closed before document end."""

    def __init__(self, document_path: str, line: int, fence: str) -> None:
        super().__init__(
            f"Unterminated code block opened with '{fence}' at line {line}"
        )
        self.document_path = document_path
        self.line = line


@dataclass(frozen=True)
class _BlockOpening:
    fence: FenceStyle
    marker: str
    indent: int
    info: str


def load_document(path: Path) -> DocumentSource:
    """Read a documentation file and index its headings.

    Args:
        path: Documentation file path.

    Returns:
        Immutable document source.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    raw_text = path.read_text(encoding="utf-8")
    return DocumentSource(
        path=str(path), raw_text=raw_text, headings=scan_headings(raw_text)
    )


def scan_headings(raw_text: str) -> tuple[Heading, ...]:
    """Collect ATX headings that are outside code blocks and front matter."""
    lines = raw_text.splitlines()
    headings: list[Heading] = []
    index = _skip_front_matter(lines)
    closing: re.Pattern[str] | None = None
    while index < len(lines):
        line = lines[index]
        if closing is not None:
            if closing.match(line):
                closing = None
        else:
            opening = _match_opening(line)
            if opening is not None:
                closing = _closing_pattern(opening)
            else:
                match = _ATX_HEADING.match(line)
                if match:
                    headings.append(
                        Heading(
                            level=len(match.group(1)),
                            title=(match.group(2) or "").strip(),
                            line=index + 1,
                        )
                    )
        index += 1
    return tuple(headings)


class SnippetSequence:
    """Lazy, restartable sequence of the snippets of one document.

    Every iteration rescans the immutable document, so the sequence can be
    consumed more than once. Iteration raises ``MalformedBlockError`` when it
    reaches an unterminated block.
    """

    def __init__(self, document: DocumentSource, extractor: "SnippetExtractor") -> None:
        self._document = document
        self._extractor = extractor

    def __iter__(self) -> Iterator[CodeSnippet]:
        return self._extractor._iter_snippets(self._document)


class SnippetExtractor:
    """Extract fenced and templated code blocks from documentation."""

    def __init__(self, config: ValidatorConfig) -> None:
        """Initialize extractor.

        Args:
            config: Validator configuration providing skip markers and languages.
        """
        self._config = config
        self._skip_markers = [re.compile(marker) for marker in config.skip_markers]

    def extract(self, document: DocumentSource) -> SnippetSequence:
        """Return the snippet sequence of a document.

        Args:
            document: Source document.

        Returns:
            Lazy sequence of snippets in document order.
        """
        return SnippetSequence(document=document, extractor=self)

    def _iter_snippets(self, document: DocumentSource) -> Iterator[CodeSnippet]:
        lines = document.raw_text.splitlines()
        headings = list(document.headings)
        heading_index = 0
        heading_stack: list[Heading] = []
        ordinal = 0
        skip_pending = False
        index = _skip_front_matter(lines)

        while index < len(lines):
            while heading_index < len(headings) and headings[heading_index].line <= index + 1:
                heading = headings[heading_index]
                while heading_stack and heading_stack[-1].level >= heading.level:
                    heading_stack.pop()
                heading_stack.append(heading)
                heading_index += 1

            line = lines[index]
            opening = _match_opening(line)
            if opening is None:
                if line.strip():
                    skip_pending = self._is_skip_marker(line)
                index += 1
                continue

            closing = _closing_pattern(opening)
            end = next(
                (
                    candidate
                    for candidate in range(index + 1, len(lines))
                    if closing.match(lines[candidate])
                ),
                None,
            )
            if end is None:
                logger.warning(
                    f"Unterminated code block (document={document.path} line={index + 1})"
                )
                raise MalformedBlockError(
                    document_path=document.path, line=index + 1, fence=opening.marker
                )

            ordinal += 1
            content = [
                _strip_indent(content_line, opening.indent)
                for content_line in lines[index + 1 : end]
            ]
            yield self._build_snippet(
                document=document,
                opening=opening,
                raw_text="\n".join(content),
                heading_path=tuple(h.title for h in heading_stack),
                ordinal=ordinal,
                start_line=index + 2,
                skip_directive=skip_pending,
            )
            skip_pending = False
            index = end + 1

    def _build_snippet(
        self,
        document: DocumentSource,
        opening: _BlockOpening,
        raw_text: str,
        heading_path: tuple[str, ...],
        ordinal: int,
        start_line: int,
        skip_directive: bool,
    ) -> CodeSnippet:
        tokens = opening.info.split()
        tag = tokens[0].strip("{}").lstrip(".") if tokens else ""
        language = self._config.resolve_language(tag) if tag else ""
        skip = skip_directive or any(
            token.lower() in _SKIP_INFO_TOKENS for token in tokens[1:]
        )
        skip_reason: str | None = None
        if skip:
            skip_reason = "skip directive"
        elif not language:
            skip_reason = "no language tag"
        elif self._config.language(language) is None:
            skip_reason = f"unsupported language '{language}'"
        return CodeSnippet(
            document_path=document.path,
            language=language,
            raw_text=raw_text,
            heading_path=heading_path,
            skip=skip,
            ordinal=ordinal,
            start_line=start_line,
            fence=opening.fence,
            skip_reason=skip_reason,
        )

    def _is_skip_marker(self, line: str) -> bool:
        stripped = line.strip()
        return any(marker.fullmatch(stripped) for marker in self._skip_markers)


def _match_opening(line: str) -> _BlockOpening | None:
    match = _FENCE_OPEN.match(line)
    if match:
        marker = match.group("fence")
        info = match.group("info").strip()
        if marker.startswith("`") and "`" in info:
            return None
        return _BlockOpening(
            fence="backtick" if marker.startswith("`") else "tilde",
            marker=marker,
            indent=len(match.group("indent")),
            info=info,
        )
    match = _LIQUID_OPEN.match(line)
    if match:
        return _BlockOpening(
            fence="liquid",
            marker=match.group("tag"),
            indent=0,
            info=match.group("info").strip(),
        )
    return None


def _closing_pattern(opening: _BlockOpening) -> re.Pattern[str]:
    if opening.fence == "liquid":
        return re.compile(rf"^[ \t]*\{{%-?\s*end{opening.marker}\s*-?%\}}[ \t]*$")
    char = re.escape(opening.marker[0])
    return re.compile(rf"^[ \t]*{char}{{{len(opening.marker)},}}[ \t]*$")


def _strip_indent(line: str, width: int) -> str:
    removable = len(line) - len(line.lstrip(" "))
    return line[min(width, removable) :]


def _skip_front_matter(lines: list[str]) -> int:
    if not lines or lines[0].strip() != "---":
        return 0
    for index in range(1, len(lines)):
        if lines[index].strip() in _FRONT_MATTER_DELIMITERS:
            return index + 1
    return 0
