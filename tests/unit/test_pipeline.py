# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""End-to-end validation pipeline tests."""

import errno
import io
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest

from snipcheck.config import LanguageConfig, ValidatorConfig, default_config
from snipcheck.database import SQLiteSnippetCache
from snipcheck.model import NormalizedUnit, UnitResult
from snipcheck.pipeline import ValidationPipeline
from snipcheck.renderer import ReportRenderer
from snipcheck.runner import CompileRunner, ToolchainNotFoundError


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def config(python_language: LanguageConfig) -> ValidatorConfig:
    base = default_config()
    languages = dict(base.languages)
    languages["python"] = python_language
    return replace(base, max_workers=2, languages=languages)


class _CountingRunner(CompileRunner):
    def __init__(self, config: ValidatorConfig) -> None:
        super().__init__(config)
        self.calls = 0
        self._calls_lock = threading.Lock()

    def run(self, unit: NormalizedUnit) -> UnitResult:
        with self._calls_lock:
            self.calls += 1
        return super().run(unit)


def _block(code: str, language: str = "python") -> str:
    return f"```{language}\n{code}\n```"


def test_ph10_pipe_001_skipped_and_clean_snippets_pass(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(
        doc,
        "\n\n".join(
            [
                "# Guide",
                "<!-- skip -->",
                _block("this is not python"),
                _block("import os\nprint(os.sep)"),
            ]
        ),
    )

    report = ValidationPipeline(config).run([str(doc)])

    assert (report.checked, report.passed, report.failed, report.skipped) == (1, 1, 0, 1)
    assert report.exit_code() == 0


def test_ph10_pipe_002_removed_symbol_is_one_unresolved_api(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, "# Paths\n\n" + _block("import os\nos.path.joinn('a', 'b')") + "\n")

    report = ValidationPipeline(config).run([str(doc)])

    assert report.failed == 1
    diagnostics = report.outcomes[0].diagnostics
    assert len(diagnostics) == 1
    assert diagnostics[0].category == "unresolved_api"
    assert diagnostics[0].diagnostic.line == 2
    assert report.outcomes[0].snippet.start_line == 4
    assert report.exit_code() == 1


def test_ph10_pipe_003_unterminated_fence_is_isolated_to_its_document(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    good = tmp_path / "docs" / "a.md"
    broken = tmp_path / "docs" / "b.md"
    _write_file(good, _block("print('a')") + "\n")
    _write_file(broken, _block("print('b')") + "\n\n```python\nprint('never closed')\n")

    report = ValidationPipeline(config).run([str(tmp_path / "docs")])

    assert report.passed == 2
    assert [error.document_path for error in report.document_errors] == [str(broken)]
    assert report.document_errors[0].line == 5
    assert report.exit_code() == 1


def test_ph10_pipe_004_counts_are_conserved_across_documents(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    _write_file(
        tmp_path / "one.md",
        "\n\n".join([_block("print(1)"), _block("x", "rust"), _block("plain", "")]),
    )
    _write_file(
        tmp_path / "two.md",
        "\n\n".join([_block("import os\nos.nope"), _block("print(2)", "py skip")]),
    )

    report = ValidationPipeline(config).run([str(tmp_path)])

    assert report.total == 5
    assert report.checked + report.skipped == len(report.outcomes) == 5
    assert report.passed + report.failed == report.checked
    assert (report.passed, report.failed, report.skipped) == (1, 1, 3)


def test_ph10_pipe_005_wrapper_errors_map_into_snippet(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, _block("def greet(self):\n    return (") + "\n")

    report = ValidationPipeline(config).run([str(doc)])

    diagnostic = report.outcomes[0].diagnostics[0]
    assert diagnostic.category == "syntax_error"
    assert 1 <= diagnostic.diagnostic.line <= report.outcomes[0].snippet.line_count


def test_ph10_pipe_006_ambiguous_fragment_is_unverifiable(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, _block("def _SnippetHost(self):\n    return 1") + "\n")
    runner = _CountingRunner(config)

    report = ValidationPipeline(config, runner=runner).run([str(doc)])

    assert report.failed == 1
    assert report.outcomes[0].diagnostics[0].category == "unverifiable"
    assert runner.calls == 0


def test_ph10_pipe_007_cancelled_run_stops_before_documents(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, _block("print(1)") + "\n")
    event = threading.Event()
    event.set()

    report = ValidationPipeline(config, cancel_event=event).run([str(doc)])

    assert report.cancelled is True
    assert report.outcomes == ()
    assert report.exit_code() == 2


def test_ph10_pipe_008_cache_skips_known_good_snippets(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(
        doc,
        "\n\n".join([_block("print(1)"), _block("import os\nos.nope")]),
    )
    cache = SQLiteSnippetCache(db_path=tmp_path / "cache.sqlite")

    first_runner = _CountingRunner(config)
    first = ValidationPipeline(config, cache=cache, runner=first_runner).run([str(doc)])
    second_runner = _CountingRunner(config)
    second = ValidationPipeline(config, cache=cache, runner=second_runner).run([str(doc)])

    assert first_runner.calls == 2
    assert second_runner.calls == 1
    assert [outcome.cached for outcome in second.outcomes] == [True, False]
    assert (second.passed, second.failed) == (first.passed, first.failed) == (1, 1)


def test_ph10_pipe_009_missing_toolchain_aborts_run(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, _block("print(1)") + "\n")

    languages = dict(config.languages)
    languages["python"] = replace(languages["python"], command=("snipcheck-no-such-python",))

    with pytest.raises(ToolchainNotFoundError):
        ValidationPipeline(replace(config, languages=languages)).run([str(doc)])


def test_ph10_pipe_010_extract_lists_snippets_without_compiling(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, "\n\n".join([_block("print(1)"), _block("x", "rust"), "```python"]))

    snippets, errors = ValidationPipeline(config).extract([str(doc)])

    assert [snippet.language for snippet in snippets] == ["python", "rust"]
    assert len(errors) == 1


def test_ph10_pipe_011_unit_file_write_failure_stays_with_its_snippet(
    tmp_path: Path, config: ValidatorConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, "\n\n".join([_block("print(1)"), _block("print(2)")]))
    original_write_text = Path.write_text

    def _write_text(self: Path, data: str, *args: Any, **kwargs: Any) -> int:
        if self.name.startswith("snippet_") and "print(1)" in data:
            raise OSError(errno.ENOSPC, "No space left on device")
        return original_write_text(self, data, *args, **kwargs)

    monkeypatch.setattr(Path, "write_text", _write_text)

    report = ValidationPipeline(replace(config, max_workers=1)).run([str(doc)])

    assert (report.passed, report.failed) == (1, 1)
    failure = report.outcomes[0].diagnostics[0]
    assert failure.category == "tool_failure"
    assert "No space left on device" in failure.diagnostic.message
    assert report.outcomes[1].status == "passed"


@pytest.mark.parametrize("report_format", ["text", "json", "github"])
def test_ph10_pipe_012_rerun_on_unchanged_documents_renders_identically(
    tmp_path: Path, config: ValidatorConfig, report_format: str
) -> None:
    _write_file(
        tmp_path / "docs" / "a.md",
        "\n\n".join(
            [
                "# Guide",
                _block("import os\nos.path.joinn('a', 'b')"),
                "## Later",
                _block("print(1)"),
                _block("x", "rust"),
            ]
        ),
    )
    _write_file(tmp_path / "docs" / "b.md", _block("print(2)") + "\n\n```python\n")
    renderer = ReportRenderer(report_format=report_format)

    outputs = []
    for _ in range(2):
        report = ValidationPipeline(config).run([str(tmp_path / "docs")])
        stream = io.StringIO()
        renderer.render(report, stream)
        outputs.append(stream.getvalue())

    assert outputs[0] == outputs[1]
    assert outputs[0] != ""


def test_ph10_pipe_013_dart_without_project_dir_aborts_run(
    tmp_path: Path, config: ValidatorConfig
) -> None:
    doc = tmp_path / "guide.md"
    _write_file(doc, _block("Text('hello')", "dart") + "\n")

    with pytest.raises(ToolchainNotFoundError) as exc_info:
        ValidationPipeline(config).run([str(doc)])

    assert exc_info.value.language == "dart"
    assert "project_dir" in str(exc_info.value)
