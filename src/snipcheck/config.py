# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Validator configuration: built-in language defaults and snipcheck.yml loading."""

import logging
import os
import re
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "snipcheck.yml"

DiagnosticFormat = Literal["machine", "regex"]


class ConfigError(RuntimeError):
    """Represent an unreadable or invalid configuration file."""


@dataclass(frozen=True)
class FragmentWrapper:
    """Scaffolding placed around one kind of fragment.

    Attributes:
        prefix: Lines inserted before the snippet.
        suffix: Lines appended after the snippet.
        indent: Indentation applied to every snippet line.
    """

    prefix: str = ""
    suffix: str = ""
    indent: str = ""


@dataclass(frozen=True)
class LanguageTemplate:
    """Describe how bare fragments of one language become compilable units.

    Attributes:
        imports: Import lines injected into wrapped fragments when absent.
        entry_point: Pattern marking a complete unit (searched in the text).
        declaration: Pattern for a leading top-level declaration line.
        member: Pattern for a leading class member signature line.
        annotation: Pattern for annotation lines skipped during classification.
        comment: Pattern for comment lines skipped during classification.
        wrappers: Scaffolding per fragment kind; kinds without an entry
            compile as they are.
        identifier_patterns: Patterns whose first group captures a declared
            identifier.
        wrapper_identifiers: Identifiers the wrappers declare.
    """

    imports: tuple[str, ...] = ()
    entry_point: str | None = None
    declaration: str | None = None
    member: str | None = None
    annotation: str | None = None
    comment: str | None = None
    wrappers: dict[str, FragmentWrapper] = field(default_factory=dict)
    identifier_patterns: tuple[str, ...] = ()
    wrapper_identifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassificationRules:
    """Allow-lists telling API staleness apart from transcription mistakes.

    All entries are case-insensitive regular expressions; codes must match
    fully, messages are searched.
    """

    unresolved_codes: tuple[str, ...] = ()
    unresolved_messages: tuple[str, ...] = ()
    deprecated_codes: tuple[str, ...] = ()
    deprecated_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class LanguageConfig:
    """Toolchain and template settings for one snippet language.

    Attributes:
        name: Canonical language tag.
        aliases: Other fence tags resolving to this language.
        command: Compiler/analyzer argv; ``{file}`` and ``{dir}`` are
            substituted, the file is appended when neither appears.
        file_extension: Suffix of the unit file handed to the command.
        project_dir: Directory hosting the temporary unit directories, for
            toolchains that need resolved package dependencies.
        requires_project_dir: Whether template imports only resolve inside
            ``project_dir``, making it mandatory for this language.
        env: Extra environment variables for the command.
        diagnostic_format: ``machine`` pipe-delimited records or ``regex``.
        diagnostic_pattern: Pattern with named groups for ``regex`` output.
        template: Fragment wrapping template.
        classification: Staleness classification rules.
    """

    name: str
    command: tuple[str, ...]
    file_extension: str
    aliases: tuple[str, ...] = ()
    project_dir: Path | None = None
    requires_project_dir: bool = False
    env: dict[str, str] = field(default_factory=dict)
    diagnostic_format: DiagnosticFormat = "machine"
    diagnostic_pattern: str | None = None
    template: LanguageTemplate = field(default_factory=LanguageTemplate)
    classification: ClassificationRules = field(default_factory=ClassificationRules)

    @property
    def fingerprint(self) -> str:
        """Return a stable identity of the toolchain for cache keys."""
        return " ".join(self.command) + "|" + self.file_extension


@dataclass(frozen=True)
class ValidatorConfig:
    """Top-level validator settings.

    Attributes:
        timeout_seconds: Upper bound for one compiler invocation.
        max_workers: Size of the compilation worker pool.
        cache_path: SQLite snippet cache location; ``None`` disables caching.
        include: Gitignore-style patterns selecting documents in directories.
        exclude: Gitignore-style patterns removing documents.
        skip_markers: Patterns for directive lines placed before a block.
        languages: Configured languages keyed by canonical tag.
    """

    timeout_seconds: float = 60.0
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    cache_path: Path | None = None
    include: tuple[str, ...] = ("**/*.md", "**/*.markdown")
    exclude: tuple[str, ...] = ()
    skip_markers: tuple[str, ...] = (
        r"<!--\s*(?:snipcheck:\s*)?skip\s*-->",
        r"\{%-?\s*comment\s*-?%\}\s*skip\s*\{%-?\s*endcomment\s*-?%\}",
    )
    languages: dict[str, LanguageConfig] = field(default_factory=dict)

    def resolve_language(self, tag: str) -> str:
        """Resolve a fence tag to a canonical language name.

        Args:
            tag: Raw language tag from the fence.

        Returns:
            Canonical language for configured tags, else the lower-cased tag.
        """
        normalized = tag.strip().lower()
        if normalized in self.languages:
            return normalized
        for language in self.languages.values():
            if normalized in language.aliases:
                return language.name
        return normalized

    def language(self, name: str) -> LanguageConfig | None:
        return self.languages.get(name)


_DART_HOST = "abstract class _SnippetHost extends State<StatefulWidget> {"

DART_LANGUAGE = LanguageConfig(
    name="dart",
    aliases=("flutter",),
    command=("dart", "analyze", "--format=machine", "{file}"),
    file_extension=".dart",
    requires_project_dir=True,
    template=LanguageTemplate(
        imports=("import 'package:flutter/material.dart';",),
        entry_point=r"(?m)^\s*(?:void\s+|Future<void>\s+)?main\s*\(",
        declaration=(
            r"^(?:import|export|library|part|class|abstract|base|sealed|interface"
            r"|final\s+class|mixin|enum|typedef|extension)\b"
        ),
        member=(
            r"^(?!(?:new|const|return|await|throw|yield|var|final|if|else|for"
            r"|while|do|switch|case|try|catch|finally|assert)\b)"
            r"(?:(?:static|late|external|covariant)\s+)*"
            r"[A-Za-z_$][\w$]*(?:<[^;{}()]*>)?\??\s+"
            r"(?:get\s+|set\s+)?[A-Za-z_$][\w$]*\s*(?:\(|=>|\{)"
        ),
        annotation=r"^@[A-Za-z_$][\w$.]*(?:\(.*\))?$",
        comment=r"^(?://|/\*|\*)",
        wrappers={
            "declarations": FragmentWrapper(),
            "member": FragmentWrapper(prefix=_DART_HOST, suffix="}", indent="  "),
            "statements": FragmentWrapper(
                prefix=(
                    _DART_HOST
                    + "\n  Future<dynamic> _snippetBody(BuildContext context) async {"
                ),
                suffix="  }\n}",
                indent="    ",
            ),
            "expression": FragmentWrapper(
                prefix=_DART_HOST + "\n  Object? _snippetValue(BuildContext context) =>",
                suffix="      ;\n}",
                indent="      ",
            ),
        },
        identifier_patterns=(
            r"\b(?:class|mixin|enum|typedef|extension)\s+([A-Za-z_$][\w$]*)",
            r"(?m)^\s*(?:[A-Za-z_$][\w$<>?,]*\s+)*([A-Za-z_$][\w$]*)\s*\([^()]*\)"
            r"\s*(?:async\*?|sync\*)?\s*(?:\{|=>)",
            r"\b(?:var|final|const|late)\s+(?:[A-Za-z_$][\w$<>?]*\s+)?"
            r"([A-Za-z_$][\w$]*)\s*[=;]",
        ),
        wrapper_identifiers=("_SnippetHost", "_snippetBody", "_snippetValue"),
    ),
    classification=ClassificationRules(
        unresolved_codes=(
            r"UNDEFINED_[A-Z_]+",
            r"URI_DOES_NOT_EXIST",
            r"NEW_WITH_UNDEFINED_CONSTRUCTOR(?:_DEFAULT)?",
            r"NON_TYPE_AS_TYPE_ARGUMENT",
            r"NOT_A_TYPE",
            r"CREATION_WITH_NON_TYPE",
        ),
        unresolved_messages=(
            r"isn't defined",
            r"undefined name",
            r"doesn't exist",
            r"isn't a type",
        ),
        deprecated_codes=(r"DEPRECATED_[A-Z_]+",),
        deprecated_messages=(r"is deprecated", r"was deprecated"),
    ),
)

PYTHON_LANGUAGE = LanguageConfig(
    name="python",
    aliases=("py", "python3"),
    command=(sys.executable, "-m", "snipcheck.pycheck", "{file}"),
    file_extension=".py",
    template=LanguageTemplate(
        member=r"^(?:async\s+)?def\s+[A-Za-z_]\w*\s*\(\s*(?:self|cls)\b",
        annotation=r"^@[A-Za-z_][\w.]*(?:\(.*\))?$",
        comment=r"^#",
        wrappers={
            "member": FragmentWrapper(prefix="class _SnippetHost:", indent="    "),
        },
        identifier_patterns=(
            r"(?m)^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)",
            r"(?m)^\s*class\s+([A-Za-z_]\w*)",
            r"(?m)^\s*([A-Za-z_]\w*)\s*(?::[^=\n]+)?=(?!=)",
        ),
        wrapper_identifiers=("_SnippetHost",),
    ),
    classification=ClassificationRules(
        unresolved_codes=(r"UNDEFINED_[A-Z_]+", r"URI_DOES_NOT_EXIST"),
        unresolved_messages=(r"isn't defined", r"doesn't exist"),
        deprecated_codes=(r"DEPRECATED_[A-Z_]+",),
        deprecated_messages=(r"is deprecated",),
    ),
)


def default_config() -> ValidatorConfig:
    """Return the built-in configuration with Dart and Python toolchains."""
    return ValidatorConfig(
        languages={"dart": DART_LANGUAGE, "python": PYTHON_LANGUAGE},
    )


def load_config(config_path: Path | None) -> ValidatorConfig:
    """Load configuration, merging a YAML file over built-in defaults.

    Args:
        config_path: Explicit configuration file. When ``None``, a
            ``snipcheck.yml`` in the working directory is used if present.

    Returns:
        Effective validator configuration.

    Raises:
        ConfigError: If the file cannot be read or holds invalid values.
    """
    base = default_config()
    if config_path is None:
        candidate = Path.cwd() / CONFIG_FILE_NAME
        if not candidate.exists():
            return base
        config_path = candidate
    if not config_path.exists():
        raise ConfigError(f"Configuration file does not exist: {config_path}")

    try:
        text = config_path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if text.strip() else {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning(f"Failed to read configuration (path={config_path} error={exc})")
        raise ConfigError(f"Failed to read {config_path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path.name} must contain a mapping at the root")

    root = config_path.parent.resolve()
    languages = dict(base.languages)
    for name, raw_language in _as_dict(data.get("languages"), "languages").items():
        canonical = str(name).strip().lower()
        languages[canonical] = _merge_language(
            name=canonical,
            base=languages.get(canonical),
            data=_as_dict(raw_language, f"languages.{canonical}"),
            root=root,
        )

    cache_value = _as_str(data.get("cache_path"), "cache_path")
    timeout_seconds = _as_float(data.get("timeout_seconds"), "timeout_seconds")
    max_workers = _as_int(data.get("max_workers"), "max_workers")
    config = ValidatorConfig(
        timeout_seconds=base.timeout_seconds if timeout_seconds is None else timeout_seconds,
        max_workers=base.max_workers if max_workers is None else max_workers,
        cache_path=(root / cache_value) if cache_value else None,
        include=_as_str_tuple(data.get("include"), "include") or base.include,
        exclude=_as_str_tuple(data.get("exclude"), "exclude"),
        skip_markers=base.skip_markers
        + _as_str_tuple(data.get("skip_markers"), "skip_markers"),
        languages=languages,
    )
    if config.timeout_seconds <= 0:
        raise ConfigError("timeout_seconds must be > 0")
    if config.max_workers <= 0:
        raise ConfigError("max_workers must be > 0")
    _check_patterns(config)
    logger.debug(
        f"Configuration loaded (path={config_path} languages={sorted(languages)})"
    )
    return config


def _merge_language(
    name: str, base: LanguageConfig | None, data: dict[str, Any], root: Path
) -> LanguageConfig:
    """Build a language entry from YAML values over an optional default."""
    command = _as_str_tuple(data.get("command"), f"languages.{name}.command")
    extension = _as_str(data.get("file_extension"), f"languages.{name}.file_extension")
    if base is None:
        if not command or not extension:
            raise ConfigError(
                f"languages.{name} needs 'command' and 'file_extension' settings"
            )
        base = LanguageConfig(name=name, command=command, file_extension=extension)

    project_dir = _as_str(data.get("project_dir"), f"languages.{name}.project_dir")
    requires_project_dir = _as_bool(
        data.get("requires_project_dir"), f"languages.{name}.requires_project_dir"
    )
    diagnostic_format = (
        _as_str(data.get("diagnostic_format"), f"languages.{name}.diagnostic_format")
        or base.diagnostic_format
    )
    if diagnostic_format not in ("machine", "regex"):
        raise ConfigError(
            f"languages.{name}.diagnostic_format must be 'machine' or 'regex'"
        )
    diagnostic_pattern = (
        _as_str(data.get("diagnostic_pattern"), f"languages.{name}.diagnostic_pattern")
        or base.diagnostic_pattern
    )
    if diagnostic_format == "regex" and not diagnostic_pattern:
        raise ConfigError(f"languages.{name}.diagnostic_pattern is required for regex")

    env = dict(base.env)
    for key, value in _as_dict(data.get("env"), f"languages.{name}.env").items():
        env[str(key)] = str(value)

    return replace(
        base,
        aliases=_as_str_tuple(data.get("aliases"), f"languages.{name}.aliases")
        or base.aliases,
        command=command or base.command,
        file_extension=extension or base.file_extension,
        project_dir=(root / project_dir) if project_dir else base.project_dir,
        requires_project_dir=(
            base.requires_project_dir if requires_project_dir is None else requires_project_dir
        ),
        env=env,
        diagnostic_format=diagnostic_format,  # type: ignore[arg-type]
        diagnostic_pattern=diagnostic_pattern,
        template=_merge_template(
            name, base.template, _as_dict(data.get("template"), f"languages.{name}.template")
        ),
        classification=_merge_classification(
            name,
            base.classification,
            _as_dict(data.get("classification"), f"languages.{name}.classification"),
        ),
    )


def _merge_template(
    name: str, base: LanguageTemplate, data: dict[str, Any]
) -> LanguageTemplate:
    if not data:
        return base
    prefix = f"languages.{name}.template"
    wrappers = dict(base.wrappers)
    for kind, raw_wrapper in _as_dict(data.get("wrappers"), f"{prefix}.wrappers").items():
        if kind not in ("declarations", "member", "statements", "expression"):
            raise ConfigError(f"{prefix}.wrappers has unknown fragment kind '{kind}'")
        wrapper_data = _as_dict(raw_wrapper, f"{prefix}.wrappers.{kind}")
        wrappers[kind] = FragmentWrapper(
            prefix=_as_str(wrapper_data.get("prefix"), f"{prefix}.wrappers.{kind}") or "",
            suffix=_as_str(wrapper_data.get("suffix"), f"{prefix}.wrappers.{kind}") or "",
            indent=_as_str(wrapper_data.get("indent"), f"{prefix}.wrappers.{kind}") or "",
        )
    return replace(
        base,
        imports=_override_tuple(data, "imports", base.imports, prefix),
        entry_point=_as_str(data.get("entry_point"), prefix) or base.entry_point,
        declaration=_as_str(data.get("declaration"), prefix) or base.declaration,
        member=_as_str(data.get("member"), prefix) or base.member,
        annotation=_as_str(data.get("annotation"), prefix) or base.annotation,
        comment=_as_str(data.get("comment"), prefix) or base.comment,
        wrappers=wrappers,
        identifier_patterns=_override_tuple(
            data, "identifier_patterns", base.identifier_patterns, prefix
        ),
        wrapper_identifiers=_override_tuple(
            data, "wrapper_identifiers", base.wrapper_identifiers, prefix
        ),
    )


def _check_patterns(config: ValidatorConfig) -> None:
    """Compile every configured regular expression once.

    Raises:
        ConfigError: If a pattern is not a valid regular expression.
    """
    patterns: list[tuple[str, str]] = [
        ("skip_markers", pattern) for pattern in config.skip_markers
    ]
    for name, language in config.languages.items():
        prefix = f"languages.{name}"
        template = language.template
        classification = language.classification
        optional = {
            "diagnostic_pattern": language.diagnostic_pattern,
            "template.entry_point": template.entry_point,
            "template.declaration": template.declaration,
            "template.member": template.member,
            "template.annotation": template.annotation,
            "template.comment": template.comment,
        }
        patterns.extend(
            (f"{prefix}.{key}", pattern) for key, pattern in optional.items() if pattern
        )
        grouped = {
            "template.identifier_patterns": template.identifier_patterns,
            "classification.unresolved_codes": classification.unresolved_codes,
            "classification.unresolved_messages": classification.unresolved_messages,
            "classification.deprecated_codes": classification.deprecated_codes,
            "classification.deprecated_messages": classification.deprecated_messages,
        }
        for key, values in grouped.items():
            patterns.extend((f"{prefix}.{key}", pattern) for pattern in values)

    for name, pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"'{name}' has an invalid pattern {pattern!r}: {exc}") from exc


def _merge_classification(
    name: str, base: ClassificationRules, data: dict[str, Any]
) -> ClassificationRules:
    prefix = f"languages.{name}.classification"
    return ClassificationRules(
        unresolved_codes=base.unresolved_codes
        + _as_str_tuple(data.get("unresolved_codes"), prefix),
        unresolved_messages=base.unresolved_messages
        + _as_str_tuple(data.get("unresolved_messages"), prefix),
        deprecated_codes=base.deprecated_codes
        + _as_str_tuple(data.get("deprecated_codes"), prefix),
        deprecated_messages=base.deprecated_messages
        + _as_str_tuple(data.get("deprecated_messages"), prefix),
    )


def _override_tuple(
    data: dict[str, Any], key: str, default: tuple[str, ...], prefix: str
) -> tuple[str, ...]:
    if key not in data:
        return default
    return _as_str_tuple(data.get(key), f"{prefix}.{key}")


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _as_str(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ConfigError(f"'{name}' must be a string")
    return str(value)


def _as_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{name}' must be an integer")
    return value


def _as_bool(value: Any, name: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigError(f"'{name}' must be true or false")
    return value


def _as_float(value: Any, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{name}' must be a number")
    return float(value)


def _as_str_tuple(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigError(f"'{name}' must be a list of strings")
    return tuple(str(item) for item in value)
