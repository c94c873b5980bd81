"""
Internal DB subpackage for Playlister.

Split into focused units (operation descriptors, migrations, records, schema
dump) while `CatalogDb` stays the single public interface the rest of the
codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
"""

from __future__ import annotations

# Operations / schema
from .operations import AddColumn, Column, CreateTable, Schema, TableSchema

# Migrations
from .migrations import Migration, MigrationRunner, MigrationState, discover_migrations

# Records
from .records import Record, RecordStore

__all__ = [
    # operations
    "AddColumn",
    "Column",
    "CreateTable",
    "Schema",
    "TableSchema",
    # migrations
    "Migration",
    "MigrationRunner",
    "MigrationState",
    "discover_migrations",
    # records
    "Record",
    "RecordStore",
]
