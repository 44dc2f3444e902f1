# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
from pathlib import Path

import pytest

from snipcheck.config import ConfigError, default_config, load_config


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_ph8_cfg_001_defaults_apply_without_config_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(None)

    assert sorted(config.languages) == ["dart", "python"]
    assert config.timeout_seconds == 60.0
    assert config.cache_path is None
    assert config.resolve_language("Flutter") == "dart"
    assert config.resolve_language("py") == "python"
    assert config.resolve_language("Rust") == "rust"


def test_ph8_cfg_002_working_directory_file_is_merged_over_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_file(
        tmp_path / "snipcheck.yml",
        "\n".join(
            [
                "timeout_seconds: 12.5",
                "max_workers: 3",
                "cache_path: .snipcheck/cache.sqlite",
                "exclude:",
                "  - drafts/",
                "languages:",
                "  dart:",
                "    project_dir: tooling/snippets",
                "    classification:",
                "      unresolved_codes: [MISSING_THING]",
                "  shell:",
                "    command: [bash, -n, '{file}']",
                "    file_extension: .sh",
                "    aliases: [sh, bash]",
                "    diagnostic_format: regex",
                "    diagnostic_pattern: '^(?P<file>[^:]+): line (?P<line>\\d+): (?P<message>.*)$'",
            ]
        ),
    )
    monkeypatch.chdir(tmp_path)

    config = load_config(None)

    assert config.timeout_seconds == 12.5
    assert config.max_workers == 3
    assert config.cache_path == tmp_path.resolve() / ".snipcheck" / "cache.sqlite"
    assert config.exclude == ("drafts/",)
    dart = config.languages["dart"]
    assert dart.project_dir == tmp_path.resolve() / "tooling" / "snippets"
    assert dart.command == ("dart", "analyze", "--format=machine", "{file}")
    assert "MISSING_THING" in dart.classification.unresolved_codes
    assert r"UNDEFINED_[A-Z_]+" in dart.classification.unresolved_codes
    shell = config.languages["shell"]
    assert shell.command == ("bash", "-n", "{file}")
    assert shell.diagnostic_format == "regex"
    assert config.resolve_language("sh") == "shell"


def test_ph8_cfg_003_template_wrappers_can_be_overridden(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yml"
    _write_file(
        config_path,
        "\n".join(
            [
                "languages:",
                "  python:",
                "    template:",
                "      imports: ['import typing']",
                "      wrappers:",
                "        statements:",
                "          prefix: 'def _snippet_body():'",
                "          indent: '    '",
            ]
        ),
    )

    config = load_config(config_path)

    template = config.languages["python"].template
    assert template.imports == ("import typing",)
    assert template.wrappers["statements"].prefix == "def _snippet_body():"
    assert "member" in template.wrappers


@pytest.mark.parametrize(
    "content",
    [
        "max_workers: -1",
        "timeout_seconds: -5",
        "languages:\n  go:\n    aliases: [golang]",
        "languages:\n  python:\n    diagnostic_format: xml",
        "languages:\n  python:\n    template:\n      wrappers:\n        module: {}",
        "include: {a: b}",
        "- just\n- a list",
        "languages: [unclosed",
        "timeout_seconds: 0",
        "max_workers: 0",
        "skip_markers: ['(unclosed']",
        "languages:\n  python:\n    classification:\n      deprecated_codes: ['(unclosed']",
        "languages:\n  dart:\n    template:\n      member: '[bad'",
        "languages:\n  shell:\n    command: [bash, -n]\n    file_extension: .sh\n"
        "    diagnostic_format: regex\n    diagnostic_pattern: '(?P<line>'",
        "languages:\n  dart:\n    requires_project_dir: maybe",
    ],
)
def test_ph8_cfg_004_invalid_configuration_raises_config_error(
    tmp_path: Path, content: str
) -> None:
    config_path = tmp_path / "snipcheck.yml"
    _write_file(config_path, content)

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_ph8_cfg_005_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml")


def test_ph8_cfg_006_default_config_is_independent_per_call() -> None:
    first = default_config()
    second = default_config()

    first.languages.pop("dart")

    assert "dart" in second.languages


def test_ph8_cfg_007_template_skip_patterns_and_project_binding_are_merged(
    tmp_path: Path,
) -> None:
    config_path = tmp_path / "custom.yml"
    _write_file(
        config_path,
        "\n".join(
            [
                "languages:",
                "  dart:",
                "    requires_project_dir: false",
                "    template:",
                "      annotation: '^@pragma'",
                "      comment: '^///'",
            ]
        ),
    )

    config = load_config(config_path)

    dart = config.languages["dart"]
    assert dart.requires_project_dir is False
    assert dart.template.annotation == "^@pragma"
    assert dart.template.comment == "^///"
    assert dart.template.member == default_config().languages["dart"].template.member
    assert default_config().languages["dart"].requires_project_dir is True
