# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Snippet cache contracts."""

import hashlib
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from snipcheck.config import LanguageConfig
from snipcheck.model import NormalizedUnit

logger = logging.getLogger(__name__)

RunStatus = Literal["passed", "failed", "cancelled"]


class CacheError(RuntimeError):
    """Represent a failed cache read or write."""


@dataclass(frozen=True)
class PassingUnit:
    """Describe one unit that compiled without diagnostics.

    Attributes:
        md5sum: Hash of language, toolchain fingerprint and unit text.
        language: Canonical language of the snippet.
        document_path: Document the snippet was last seen in.
        ordinal: Ordinal of the snippet in that document.
    """

    md5sum: str
    language: str
    document_path: str
    ordinal: int


@dataclass(frozen=True)
class RecordRunInput:
    """Describe all values needed to record one validation run.

    Attributes:
        paths: Document paths validated in this run.
        checked: Number of compiled snippets.
        passed: Number of snippets without errors.
        failed: Number of snippets with errors.
        skipped: Number of skipped snippets.
        document_error_count: Number of document-level failures.
        status: Overall run status.
        passing_units: Units safe to skip in later runs.
    """

    paths: list[str]
    checked: int
    passed: int
    failed: int
    skipped: int
    document_error_count: int
    status: RunStatus
    passing_units: list[PassingUnit]


class SnippetCache(Protocol):
    """Define the contract for remembering units that compiled cleanly."""

    def known_good(self, md5sums: list[str]) -> set[str]:
        """Return the subset of hashes recorded as passing."""

    def record_run(self, payload: RecordRunInput) -> int:
        """Persist one run and its passing units; return the run id."""


def unit_hash(unit: NormalizedUnit, language: LanguageConfig) -> str:
    """Hash a normalized unit together with the toolchain that checks it."""
    digest_input = f"{language.name}|{language.fingerprint}|{unit.text}"
    return hashlib.md5(digest_input.encode("utf-8")).hexdigest()  # noqa: S324
