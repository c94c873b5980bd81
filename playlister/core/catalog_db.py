"""
Catalogue database facade.

Goals:
- One object owning the connection, the migration runner, the record store and
  the association resolver.
- SQLite + aiosqlite, async/await friendly.
- Schema evolves only through the migrations in `playlister.core.db.versions`.

Note:
- Operation descriptors live in `playlister.core.db.operations`
- Migration runner/discovery live in `playlister.core.db.migrations`
- CRUD lives in `playlister.core.db.records`
- `CatalogDb` remains the public facade used by the CLI and web layers
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import aiosqlite

from playlister.core.associations import Registry
from playlister.core.db.migrations import (
    LEDGER_TABLE,
    Migration,
    MigrationRunner,
    MigrationState,
    discover_migrations,
)
from playlister.core.db.operations import Schema
from playlister.core.db.records import RecordStore
from playlister.core.db.schema_dump import list_tables, write_schema_dump
from playlister.core.models import build_registry
from playlister.core.resolver import AssociationResolver

logger = logging.getLogger(__name__)


class CatalogDb:
    """
    Async access layer for the catalogue DB.

    Usage:
        db = CatalogDb("playlister.sqlite3")
        await db.open()
        await db.migrate()
        prince = await db.records.create("Artist", name="Prince")
        await db.associations.create(prince, "songs", name="Purple Rain")
        await db.close()

    Notes:
    - Connections are not pooled; we keep a single connection.
    - Callers must not run two migrations at once against the same file.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        registry: Registry | None = None,
        migrations: Sequence[Migration] | None = None,
    ) -> None:
        self._db_path = str(db_path)
        self._registry = registry if registry is not None else build_registry()
        self._migrations = list(migrations) if migrations is not None else discover_migrations()
        self._conn: aiosqlite.Connection | None = None
        self._runner: MigrationRunner | None = None
        self._records: RecordStore | None = None
        self._associations: AssociationResolver | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        # Pragmas: modern defaults without being clever.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")

        self._runner = MigrationRunner(self._conn)
        await self._runner.load(self._migrations)
        self._records = RecordStore(self._conn, self._registry, self._runner)
        self._associations = AssociationResolver(self._records)
        logger.debug("Opened catalogue %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        self._runner = None
        self._records = None
        self._associations = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("CatalogDb is not open. Call await db.open() first.")
        return self._conn

    def _require_runner(self) -> MigrationRunner:
        self._require_conn()
        assert self._runner is not None
        return self._runner

    @property
    def schema(self) -> Schema:
        return self._require_runner().schema

    @property
    def records(self) -> RecordStore:
        self._require_conn()
        assert self._records is not None
        return self._records

    @property
    def associations(self) -> AssociationResolver:
        self._require_conn()
        assert self._associations is not None
        return self._associations

    # ===========================================================================
    # Schema lifecycle
    # ===========================================================================

    async def migrate(self, *, schema_dump: str | Path | None = None) -> int:
        """Apply pending migrations; write the schema dump when a path is given."""
        count = await self._require_runner().apply(self._migrations)
        if schema_dump is not None:
            await self.dump_schema(schema_dump)
        return count

    async def migration_status(self) -> list[MigrationState]:
        return await self._require_runner().status(self._migrations)

    async def schema_version(self) -> int:
        return await self._require_runner().current_version()

    async def dump_schema(self, path: str | Path) -> Path:
        return await write_schema_dump(self._require_conn(), path)

    async def drop(self) -> list[str]:
        """Discard every table (data, schema and ledger). Returns the dropped table names."""
        conn = self._require_conn()
        tables = await list_tables(conn)
        cursor = await conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?;",
            (LEDGER_TABLE,),
        )
        if await cursor.fetchone() is not None:
            tables.append(LEDGER_TABLE)

        await conn.execute("PRAGMA foreign_keys = OFF;")
        try:
            for table in tables:
                # Names come from sqlite_master.
                await conn.execute(f"DROP TABLE IF EXISTS {table};")
            await conn.commit()
        finally:
            await conn.execute("PRAGMA foreign_keys = ON;")

        await self._require_runner().load(self._migrations)
        logger.info("Dropped %d table(s)", len(tables))
        return tables
