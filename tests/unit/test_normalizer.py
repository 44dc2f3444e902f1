# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for fragment classification and wrapping."""

import pytest

from snipcheck.config import DART_LANGUAGE, PYTHON_LANGUAGE, default_config
from snipcheck.model import CodeSnippet, LineMap
from snipcheck.normalizer import (
    AmbiguousFragmentError,
    SnippetNormalizer,
    classify_fragment,
)

DART_IMPORT = "import 'package:flutter/material.dart';"


def _snippet(
    raw_text: str, language: str = "dart", skip_reason: str | None = None
) -> CodeSnippet:
    return CodeSnippet(
        document_path="docs/guide.md",
        language=language,
        raw_text=raw_text,
        heading_path=("Guide",),
        skip=skip_reason is not None,
        ordinal=1,
        start_line=10,
        skip_reason=skip_reason,
    )


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("void main() {\n  runApp(const App());\n}", "complete"),
        ("class Foo {}", "declarations"),
        ("@override\nWidget build(BuildContext context) {\n  return const Text('x');\n}", "member"),
        ("final x = 1;\nprint(x);", "statements"),
        ("Text('hello')", "expression"),
    ],
)
def test_ph2_norm_001_classify_fragment_for_dart(text: str, expected: str) -> None:
    assert classify_fragment(text, DART_LANGUAGE.template) == expected


def test_ph2_norm_002_python_fragments_without_wrapper_compile_as_is() -> None:
    template = PYTHON_LANGUAGE.template

    assert classify_fragment("import os\nprint(os.sep)", template) == "complete"
    assert classify_fragment("def greet(self):\n    return 'hi'", template) == "member"


def test_ph2_norm_003_statements_are_wrapped_with_imports_and_mapped_back() -> None:
    unit = SnippetNormalizer(default_config()).normalize(_snippet("final x = 1;\nprint(x);"))

    assert unit.fragment_kind == "statements"
    assert unit.text.splitlines() == [
        DART_IMPORT,
        "abstract class _SnippetHost extends State<StatefulWidget> {",
        "  Future<dynamic> _snippetBody(BuildContext context) async {",
        "    final x = 1;",
        "    print(x);",
        "  }",
        "}",
    ]
    assert unit.line_map.origins == (None, None, None, 1, 2, None, None)
    assert unit.line_map.translate(5, 11) == (2, 7)
    assert unit.wrapper_identifiers == ("_SnippetHost", "_snippetBody")


def test_ph2_norm_004_wrapper_lines_map_into_snippet_range() -> None:
    unit = SnippetNormalizer(default_config()).normalize(_snippet("final x = 1;\nprint(x);"))

    assert unit.line_map.translate(1, 8) == (1, 1)
    assert unit.line_map.translate(6, 3) == (2, 1)
    assert unit.line_map.translate(99, 3) == (2, 1)


def test_ph2_norm_005_complete_unit_is_not_wrapped_and_keeps_existing_import() -> None:
    normalizer = SnippetNormalizer(default_config())

    complete = normalizer.normalize(_snippet("void main() {\n  print('hi');\n}"))
    declared = normalizer.normalize(_snippet(f"{DART_IMPORT}\nclass A {{}}"))

    assert complete.fragment_kind == "complete"
    assert complete.text == "void main() {\n  print('hi');\n}\n"
    assert declared.fragment_kind == "declarations"
    assert declared.text.count(DART_IMPORT) == 1


def test_ph2_norm_006_expression_wrapper_closes_after_the_value() -> None:
    unit = SnippetNormalizer(default_config()).normalize(_snippet("Text('hello')"))

    assert unit.fragment_kind == "expression"
    assert unit.text.splitlines()[-3:] == ["      Text('hello')", "      ;", "}"]


def test_ph2_norm_007_dedent_is_recorded_as_column_shift() -> None:
    unit = SnippetNormalizer(default_config()).normalize(
        _snippet("    final x = 1;\n    print(x);")
    )

    assert unit.text.splitlines()[3] == "    final x = 1;"
    assert unit.line_map.column_offset == 0
    assert unit.line_map.translate(4, 5) == (1, 5)


def test_ph2_norm_008_identifier_colliding_with_wrapper_is_ambiguous() -> None:
    normalizer = SnippetNormalizer(default_config())

    with pytest.raises(AmbiguousFragmentError) as exc_info:
        normalizer.normalize(_snippet("final _snippetBody = 1;\nprint(_snippetBody);"))

    assert exc_info.value.collisions == ["_snippetBody"]


def test_ph2_norm_009_python_member_is_hosted_in_a_class() -> None:
    unit = SnippetNormalizer(default_config()).normalize(
        _snippet("def greet(self):\n    return 'hi'", language="python")
    )

    assert unit.fragment_kind == "member"
    assert unit.text == "class _SnippetHost:\n    def greet(self):\n        return 'hi'\n"
    assert unit.line_map.translate(3, 9) == (2, 5)


def test_ph2_norm_010_skipped_snippet_is_rejected() -> None:
    with pytest.raises(ValueError):
        SnippetNormalizer(default_config()).normalize(
            _snippet("x", skip_reason="skip directive")
        )


def test_ph2_norm_011_line_map_without_snippet_lines_points_at_first_line() -> None:
    line_map = LineMap(origins=(None, None), snippet_line_count=1)

    assert line_map.translate(2, 4) == (1, 1)
