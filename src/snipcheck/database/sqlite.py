# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""SQLite implementation of the snippet cache."""

import logging
import sqlite3

from datetime import datetime, timezone
from pathlib import Path

from snipcheck.cache import CacheError, RecordRunInput

logger = logging.getLogger(__name__)

_LOOKUP_CHUNK_SIZE = 500


class SQLiteSnippetCache:
    """Remember cleanly compiling units in a SQLite database."""

    def __init__(self, db_path: Path) -> None:
        """Initialize cache backend.

        Args:
            db_path: SQLite database file path.
        """
        self._db_path = db_path

    def known_good(self, md5sums: list[str]) -> set[str]:
        """Return the hashes already recorded as passing.

        Args:
            md5sums: Unit hashes to look up.

        Returns:
            Subset of ``md5sums`` present in the cache.

        Raises:
            CacheError: If the database cannot be read.
        """
        if not md5sums or not self._db_path.exists():
            return set()
        unique = sorted(set(md5sums))
        found: set[str] = set()
        connection = self._connect()
        try:
            self._ensure_schema(connection=connection)
            for start in range(0, len(unique), _LOOKUP_CHUNK_SIZE):
                chunk = unique[start : start + _LOOKUP_CHUNK_SIZE]
                placeholders = ", ".join("?" for _ in chunk)
                rows = connection.execute(
                    f"SELECT md5sum FROM passing_snippets WHERE md5sum IN ({placeholders})",
                    chunk,
                ).fetchall()
                found.update(str(row[0]) for row in rows)
        except sqlite3.DatabaseError as exc:
            logger.warning(f"SQLite cache lookup failed (db_path={self._db_path} error={exc})")
            raise CacheError(str(exc)) from exc
        finally:
            connection.close()
        logger.debug(f"Cache lookup (requested={len(unique)} hits={len(found)})")
        return found

    def record_run(self, payload: RecordRunInput) -> int:
        """Persist one run and its passing units atomically.

        Args:
            payload: Run payload to persist.

        Returns:
            Identifier of the stored run.

        Raises:
            CacheError: If schema setup or write operations fail.
        """
        recorded_at = datetime.now(tz=timezone.utc).isoformat()
        connection = self._connect()
        try:
            connection.execute("PRAGMA foreign_keys = ON")
            self._ensure_schema(connection=connection)
            connection.execute("BEGIN")
            run_cursor = connection.execute(
                "INSERT INTO runs ("
                "recorded_at, paths, status, checked, passed, failed, skipped, "
                "document_error_count"
                ") VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    recorded_at,
                    "\n".join(payload.paths),
                    payload.status,
                    payload.checked,
                    payload.passed,
                    payload.failed,
                    payload.skipped,
                    payload.document_error_count,
                ),
            )
            row_id = run_cursor.lastrowid
            if row_id is None:
                logger.warning(f"SQLite did not return a run id (db_path={self._db_path})")
                raise CacheError("SQLite did not return a run id.")
            run_id = int(row_id)
            connection.executemany(
                "INSERT INTO passing_snippets ("
                "md5sum, run_id, language, document_path, ordinal, recorded_at"
                ") VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(md5sum) DO UPDATE SET "
                "run_id = excluded.run_id, document_path = excluded.document_path, "
                "ordinal = excluded.ordinal, recorded_at = excluded.recorded_at",
                [
                    (
                        unit.md5sum,
                        run_id,
                        unit.language,
                        unit.document_path,
                        unit.ordinal,
                        recorded_at,
                    )
                    for unit in payload.passing_units
                ],
            )
            connection.commit()
            logger.debug(
                f"Run recorded (run_id={run_id} passing_units={len(payload.passing_units)})"
            )
            return run_id
        except sqlite3.DatabaseError as exc:
            connection.rollback()
            logger.warning(f"SQLite cache write failed (db_path={self._db_path} error={exc})")
            raise CacheError(str(exc)) from exc
        finally:
            connection.close()

    def _ensure_schema(self, connection: sqlite3.Connection) -> None:
        """Create required tables and indexes when missing.

        Args:
            connection: Open SQLite connection.
        """
        connection.execute(
            "CREATE TABLE IF NOT EXISTS runs ("
            "id INTEGER PRIMARY KEY, "
            "recorded_at TEXT NOT NULL, "
            "paths TEXT NOT NULL, "
            "status TEXT NOT NULL, "
            "checked INTEGER NOT NULL, "
            "passed INTEGER NOT NULL, "
            "failed INTEGER NOT NULL, "
            "skipped INTEGER NOT NULL, "
            "document_error_count INTEGER NOT NULL"
            ")"
        )
        connection.execute(
            "CREATE TABLE IF NOT EXISTS passing_snippets ("
            "md5sum TEXT PRIMARY KEY, "
            "run_id INTEGER NOT NULL REFERENCES runs(id), "
            "language TEXT NOT NULL, "
            "document_path TEXT NOT NULL, "
            "ordinal INTEGER NOT NULL, "
            "recorded_at TEXT NOT NULL"
            ")"
        )
        connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_passing_snippets_run_id "
            "ON passing_snippets(run_id)"
        )

    def _connect(self) -> sqlite3.Connection:
        """Open the cache database.

        Raises:
            CacheError: If the database file cannot be opened.
        """
        try:
            return sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            logger.warning(f"SQLite cache unavailable (db_path={self._db_path} error={exc})")
            raise CacheError(str(exc)) from exc
