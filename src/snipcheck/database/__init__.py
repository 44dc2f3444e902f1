# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Database backends for the snippet cache."""

from snipcheck.database.sqlite import SQLiteSnippetCache

__all__ = ["SQLiteSnippetCache"]
