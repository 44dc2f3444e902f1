# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Documentation file discovery from CLI paths."""

import glob
import logging
import os
from pathlib import Path

import pathspec

from snipcheck.config import ValidatorConfig

logger = logging.getLogger(__name__)

_GLOB_CHARS = ("*", "?", "[")


class DiscoveryError(RuntimeError):
    """Represent a path argument that names no document."""


class DocumentMatcher:
    """Match document paths against include and exclude patterns."""

    def __init__(self, include: pathspec.GitIgnoreSpec, exclude: pathspec.GitIgnoreSpec) -> None:
        """Initialize matcher.

        Args:
            include: Compiled patterns selecting documents inside directories.
            exclude: Compiled patterns removing documents anywhere.
        """
        self._include = include
        self._exclude = exclude

    @classmethod
    def from_config(cls, config: ValidatorConfig) -> "DocumentMatcher":
        return cls(
            include=pathspec.GitIgnoreSpec.from_lines(config.include),
            exclude=pathspec.GitIgnoreSpec.from_lines(config.exclude),
        )

    def included(self, relative_path: str) -> bool:
        """Check whether a directory member is a document."""
        normalized = relative_path.replace(os.sep, "/").strip("/")
        return bool(normalized) and self._include.match_file(normalized)

    def excluded(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check whether a path is removed by exclude patterns."""
        normalized = relative_path.replace(os.sep, "/").strip("/")
        if not normalized:
            return False
        if self._exclude.match_file(normalized):
            return True
        return is_dir and self._exclude.match_file(f"{normalized}/")


def discover_documents(paths: list[str], config: ValidatorConfig) -> list[Path]:
    """Expand files, directories and glob patterns into document paths.

    Explicit files are always taken unless excluded. Directories are walked
    recursively and contribute files matching the include patterns. Glob
    patterns expand to matching files.

    Args:
        paths: Path arguments in the order given.
        config: Configuration holding include and exclude patterns.

    Returns:
        De-duplicated document paths sorted by their POSIX form.

    Raises:
        DiscoveryError: If an argument names no existing file or directory.
    """
    matcher = DocumentMatcher.from_config(config)
    found: dict[str, Path] = {}
    for raw in paths:
        if any(char in raw for char in _GLOB_CHARS) and not Path(raw).exists():
            matches = sorted(glob.glob(raw, recursive=True))
            files = [Path(match) for match in matches if Path(match).is_file()]
            if not files:
                raise DiscoveryError(f"No documents match pattern: {raw}")
            for file_path in files:
                _add(found, file_path, matcher)
            continue
        path = Path(raw)
        if path.is_file():
            _add(found, path, matcher)
        elif path.is_dir():
            for file_path in _walk(path, matcher):
                _add(found, file_path, matcher)
        else:
            raise DiscoveryError(f"Path does not exist: {raw}")
    documents = [found[key] for key in sorted(found)]
    logger.info(f"Documents discovered (arguments={len(paths)} documents={len(documents)})")
    return documents


def _add(found: dict[str, Path], path: Path, matcher: DocumentMatcher) -> None:
    key = path.as_posix()
    if matcher.excluded(key):
        logger.debug(f"Document excluded (path={key})")
        return
    found.setdefault(key, path)


def _walk(root: Path, matcher: DocumentMatcher) -> list[Path]:
    """Collect included files under a directory, pruning excluded subtrees."""
    collected: list[Path] = []
    queue: list[Path] = [root]
    while queue:
        current = queue.pop(0)
        for child in sorted(current.iterdir(), key=lambda item: item.name):
            relative = child.relative_to(root).as_posix()
            if child.name == ".git" and child.is_dir():
                continue
            if child.is_dir():
                if not matcher.excluded(relative, is_dir=True):
                    queue.append(child)
                continue
            if matcher.included(relative):
                collected.append(child)
    return collected
