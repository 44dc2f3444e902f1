# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Snippet normalization into independently compilable units."""

import logging
import re

from snipcheck.config import LanguageTemplate, ValidatorConfig
from snipcheck.model import CodeSnippet, FragmentKind, LineMap, NormalizedUnit

logger = logging.getLogger(__name__)


class AmbiguousFragmentError(RuntimeError):
    """Represent a fragment whose identifiers collide with the wrapper's."""

    def __init__(self, snippet: CodeSnippet, collisions: list[str]) -> None:
        super().__init__(
            "Snippet declares identifiers reserved by the wrapper: "
            + ", ".join(collisions)
        )
        self.snippet = snippet
        self.collisions = collisions


def declared_identifiers(text: str, template: LanguageTemplate) -> set[str]:
    """Pre-scan identifiers a snippet declares.

    Args:
        text: Snippet text.
        template: Language template holding the identifier patterns.

    Returns:
        Declared identifier names.
    """
    names: set[str] = set()
    for pattern in template.identifier_patterns:
        for match in re.finditer(pattern, text):
            if match.group(1):
                names.add(match.group(1))
    return names


def classify_fragment(text: str, template: LanguageTemplate) -> FragmentKind:
    """Decide whether snippet text is a complete unit or which fragment it is.

    Args:
        text: Dedented snippet text.
        template: Language template with the classification patterns.

    Returns:
        Fragment kind; kinds the template cannot wrap become ``complete``.
    """
    if template.entry_point and re.search(template.entry_point, text):
        return "complete"

    lead = _leading_line(text, template)
    kind: FragmentKind
    if template.declaration and re.match(template.declaration, lead):
        kind = "declarations"
    elif template.member and re.match(template.member, lead):
        kind = "member"
    elif text.rstrip().endswith((";", "}")):
        kind = "statements"
    else:
        kind = "expression"
    if kind not in template.wrappers:
        return "complete"
    return kind


class SnippetNormalizer:
    """Wrap bare fragments using per-language templates."""

    def __init__(self, config: ValidatorConfig) -> None:
        """Initialize normalizer.

        Args:
            config: Validator configuration holding language templates.
        """
        self._config = config

    def normalize(self, snippet: CodeSnippet) -> NormalizedUnit:
        """Build the compilable unit for a non-skipped snippet.

        Args:
            snippet: Snippet to normalize.

        Returns:
            Normalized unit with a line map back to the snippet.

        Raises:
            ValueError: If the snippet is skipped or its language is not configured.
            AmbiguousFragmentError: If wrapping would shadow snippet identifiers.
        """
        if snippet.skip_reason is not None:
            raise ValueError(f"Snippet is not eligible for compilation: {snippet.key}")
        language = self._config.language(snippet.language)
        if language is None:
            raise ValueError(f"No configuration for language '{snippet.language}'")
        template = language.template

        lines = snippet.raw_text.splitlines() or [""]
        dedent_width = _common_indent(lines)
        body = [line[dedent_width:] for line in lines]
        text = "\n".join(body)
        kind = classify_fragment(text, template)

        if kind == "complete":
            origins = tuple(range(1, len(body) + 1))
            return NormalizedUnit(
                snippet=snippet,
                text=text + "\n",
                fragment_kind=kind,
                line_map=LineMap(
                    origins=origins,
                    snippet_line_count=len(lines),
                    column_offset=dedent_width,
                ),
            )

        wrapper = template.wrappers[kind]
        introduced = [
            name for name in template.wrapper_identifiers if name in wrapper.prefix + wrapper.suffix
        ]
        collisions = sorted(declared_identifiers(text, template) & set(introduced))
        if collisions:
            logger.warning(
                f"Ambiguous fragment (document={snippet.document_path} "
                f"ordinal={snippet.ordinal} collisions={collisions})"
            )
            raise AmbiguousFragmentError(snippet=snippet, collisions=collisions)

        header = [line for line in template.imports if line not in text]
        if wrapper.prefix:
            header.extend(wrapper.prefix.splitlines())
        footer = wrapper.suffix.splitlines() if wrapper.suffix else []
        wrapped_body = [
            f"{wrapper.indent}{line}" if line.strip() else line for line in body
        ]
        unit_lines = header + wrapped_body + footer
        origins_list: list[int | None] = [None] * len(header)
        origins_list.extend(range(1, len(body) + 1))
        origins_list.extend([None] * len(footer))
        logger.debug(
            f"Wrapped fragment (document={snippet.document_path} ordinal={snippet.ordinal} "
            f"kind={kind} header_lines={len(header)} footer_lines={len(footer)})"
        )
        return NormalizedUnit(
            snippet=snippet,
            text="\n".join(unit_lines) + "\n",
            fragment_kind=kind,
            line_map=LineMap(
                origins=tuple(origins_list),
                snippet_line_count=len(lines),
                column_offset=dedent_width - len(wrapper.indent),
            ),
            wrapper_identifiers=tuple(introduced),
        )


def _leading_line(text: str, template: LanguageTemplate) -> str:
    """Return the first line that is not blank, a comment or an annotation."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if template.comment and re.match(template.comment, stripped):
            continue
        if template.annotation and re.match(template.annotation, stripped):
            continue
        return stripped
    return ""


def _common_indent(lines: list[str]) -> int:
    widths = [len(line) - len(line.lstrip(" ")) for line in lines if line.strip()]
    return min(widths) if widths else 0
