# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for the snipcheck CLI harness."""

import io
import json
import logging
import re
import threading
from pathlib import Path

import pytest

from cli.validation_harness import run

SRC_PATH = Path(__file__).resolve().parents[2] / "src"


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, body: str) -> Path:
    _write_file(
        tmp_path / "snipcheck.yml",
        "\n".join(
            [
                "max_workers: 2",
                "languages:",
                "  python:",
                "    env:",
                f"      PYTHONPATH: '{SRC_PATH}'",
            ]
        ),
    )
    doc = tmp_path / "docs" / "guide.md"
    _write_file(doc, body)
    monkeypatch.chdir(tmp_path)
    return doc


CLEAN_GUIDE = "\n".join(
    [
        "# Guide",
        "",
        "## Paths",
        "",
        "```python",
        "import os",
        "print(os.sep)",
        "```",
        "",
        "<!-- skip -->",
        "```python",
        "pseudo code here",
        "```",
    ]
)

STALE_GUIDE = "\n".join(
    [
        "# Guide",
        "",
        "```python",
        "import os",
        "os.path.joinn('a', 'b')",
        "```",
    ]
)


def test_ph11_cli_001_validate_text_report_passes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)
    stdout = io.StringIO()
    stderr = io.StringIO()

    exit_code = run(["validate", "docs"], stdout=stdout, stderr=stderr)

    output = _strip_ansi(stdout.getvalue())
    assert exit_code == 0
    assert "docs/guide.md" in output
    assert "Guide > Paths" in output
    assert "checked=1 passed=1 failed=0 skipped=1 document_errors=0 status=passed" in output
    assert stderr.getvalue() == ""


def test_ph11_cli_002_validate_json_reports_unresolved_api(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, STALE_GUIDE)
    stdout = io.StringIO()

    exit_code = run(
        ["validate", "docs/guide.md", "--format", "json"], stdout=stdout, stderr=io.StringIO()
    )

    payload = json.loads(stdout.getvalue())
    assert exit_code == 1
    assert payload["summary"]["failed"] == 1
    diagnostic = payload["documents"][0]["sections"][0]["snippets"][0]["diagnostics"][0]
    assert diagnostic["category"] == "unresolved_api"
    assert diagnostic["document_line"] == 5


def test_ph11_cli_003_validate_github_writes_output_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, STALE_GUIDE)
    stdout = io.StringIO()

    exit_code = run(
        ["validate", "docs", "--format", "github", "--output", "out/report.txt"],
        stdout=stdout,
        stderr=io.StringIO(),
    )

    report = (tmp_path / "out" / "report.txt").read_text(encoding="utf-8")
    assert exit_code == 1
    assert stdout.getvalue() == ""
    assert report.startswith("::error file=docs/guide.md,line=5,col=1,title=unresolved API")


def test_ph11_cli_004_cache_flag_records_passing_snippets(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)
    caplog.set_level(logging.DEBUG, logger="snipcheck.pipeline")

    first = run(
        ["validate", "docs", "--cache", "cache.sqlite"], stdout=io.StringIO(), stderr=io.StringIO()
    )
    second = run(
        ["validate", "docs", "--cache", "cache.sqlite", "--workers", "1"],
        stdout=io.StringIO(),
        stderr=io.StringIO(),
    )

    assert first == second == 0
    assert (tmp_path / "cache.sqlite").exists()
    assert "Run recorded (run_id=1 passing_units=1)" in caplog.text
    assert "Cache hits (units=1 hits=1)" in caplog.text


def test_ph11_cli_005_cancelled_run_exits_with_internal_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)
    event = threading.Event()
    event.set()
    stdout = io.StringIO()

    exit_code = run(["validate", "docs"], stdout=stdout, stderr=io.StringIO(), cancel_event=event)

    assert exit_code == 2
    assert "status=cancelled" in _strip_ansi(stdout.getvalue())


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["validate"],
        ["validate", "missing.md"],
        ["validate", "docs", "--timeout", "0"],
        ["validate", "docs", "--workers", "0"],
        ["validate", "docs", "--cache", "a.sqlite", "--no-cache"],
        ["validate", "docs", "--config", "missing.yml"],
    ],
)
def test_ph11_cli_006_invalid_invocations_exit_with_two(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, argv: list[str]
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)

    assert run(argv, stdout=io.StringIO(), stderr=io.StringIO()) == 2


def test_ph11_cli_007_missing_toolchain_exits_with_two(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)
    _write_file(
        tmp_path / "broken.yml",
        "languages:\n  python:\n    command: [snipcheck-no-such-python, '{file}']\n",
    )
    stderr = io.StringIO()

    exit_code = run(
        ["validate", "docs", "--config", "broken.yml"], stdout=io.StringIO(), stderr=stderr
    )

    assert exit_code == 2
    assert "snipcheck-no-such-python" in stderr.getvalue()


def test_ph11_cli_008_extract_table_and_json(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, CLEAN_GUIDE)
    table_out = io.StringIO()
    json_out = io.StringIO()

    table_code = run(["extract", "docs"], stdout=table_out, stderr=io.StringIO())
    json_code = run(["extract", "docs", "--format", "json"], stdout=json_out, stderr=io.StringIO())

    assert table_code == json_code == 0
    table = _strip_ansi(table_out.getvalue())
    assert "skip directive" in table
    assert "check" in table
    payload = json.loads(json_out.getvalue())
    assert [snippet["skip_reason"] for snippet in payload["snippets"]] == [None, "skip directive"]
    assert payload["snippets"][0]["heading_path"] == ["Guide", "Paths"]
    assert payload["errors"] == []


def test_ph11_cli_009_extract_reports_document_errors(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, "```python\nprint(1)\n")
    stderr = io.StringIO()

    exit_code = run(["extract", "docs"], stdout=io.StringIO(), stderr=stderr)

    assert exit_code == 1
    assert "document_error: docs/guide.md:1:" in stderr.getvalue()


def test_ph11_cli_010_invalid_pattern_in_config_exits_with_two(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, "```python\ndef broken(:\n```\n")
    _write_file(
        tmp_path / "patterns.yml",
        "languages:\n  python:\n    classification:\n      deprecated_codes: ['(unclosed']\n",
    )
    stderr = io.StringIO()

    exit_code = run(
        ["validate", "docs", "--config", "patterns.yml"], stdout=io.StringIO(), stderr=stderr
    )

    assert exit_code == 2
    assert "languages.python.classification.deprecated_codes" in stderr.getvalue()


def test_ph11_cli_011_dart_snippets_need_a_project_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _project(tmp_path, monkeypatch, "```dart\nvoid main() {}\n```\n")
    stderr = io.StringIO()

    exit_code = run(["validate", "docs"], stdout=io.StringIO(), stderr=stderr)

    assert exit_code == 2
    assert "languages.dart.project_dir" in stderr.getvalue()
