# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Public import surface for snippet validation components."""

from snipcheck.config import ConfigError, ValidatorConfig, default_config, load_config
from snipcheck.extractor import MalformedBlockError, SnippetExtractor
from snipcheck.normalizer import AmbiguousFragmentError, SnippetNormalizer
from snipcheck.pipeline import ValidationPipeline
from snipcheck.renderer import ReportRenderer
from snipcheck.reporter import StalenessReporter
from snipcheck.runner import CompileRunner, ToolchainNotFoundError

__all__ = [
    "AmbiguousFragmentError",
    "CompileRunner",
    "ConfigError",
    "MalformedBlockError",
    "ReportRenderer",
    "SnippetExtractor",
    "SnippetNormalizer",
    "StalenessReporter",
    "ToolchainNotFoundError",
    "ValidationPipeline",
    "ValidatorConfig",
    "default_config",
    "load_config",
]
