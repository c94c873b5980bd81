"""
Versioned, forward-only migration runner.

Migrations are Python modules in `playlister.core.db.versions`, named
`m_NNN_description.py` where NNN is the zero-padded sequence number. Each must
define a `change()` function returning its list of operation descriptors
(see `playlister.core.db.operations`).

Applied migrations are tracked in the `schema_migrations` ledger table. The
in-memory `Schema` is rebuilt from the ledger by replaying the operations of
applied migrations; it is never read back from SQLite.

Design notes:
- Pending = every migration with a version greater than the highest applied one.
- Each migration runs in its own transaction together with its ledger row.
- A failing migration stops the run; earlier migrations of the same run stay
  applied. There is no rollback/downgrade support.
- The runner assumes exclusive access to the connection while it runs.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Iterable, Sequence

import aiosqlite

from playlister.core import MigrationError
from playlister.core.db.operations import Operation, Schema, to_sql

logger = logging.getLogger(__name__)

LEDGER_TABLE: Final[str] = "schema_migrations"
VERSIONS_PACKAGE: Final[str] = "playlister.core.db.versions"
MIGRATION_PREFIX: Final[str] = "m_"


@dataclass(frozen=True, slots=True)
class Migration:
    """One forward-only schema change step."""

    version: int
    name: str
    operations: tuple[Operation, ...]


@dataclass(frozen=True, slots=True)
class MigrationState:
    """A known migration together with its applied flag from the ledger."""

    version: int
    name: str
    applied: bool
    applied_at: str | None = None


def sort_migrations(migrations: Iterable[Migration]) -> list[Migration]:
    """Return migrations in ascending version order; reject duplicates."""
    ordered = sorted(migrations, key=lambda m: m.version)
    seen: set[int] = set()
    for m in ordered:
        if m.version <= 0:
            raise MigrationError(f"Migration version must be positive: {m.version}")
        if m.version in seen:
            raise MigrationError(f"Duplicate migration version {m.version}", version=m.version)
        seen.add(m.version)
    return ordered


def discover_migrations(package: str = VERSIONS_PACKAGE) -> list[Migration]:
    """Import every `m_NNN_name.py` module in `package` and collect its changes."""
    pkg = importlib.import_module(package)
    if pkg.__file__ is None:
        return []
    directory = Path(pkg.__file__).parent

    found: list[Migration] = []
    for mf in sorted(directory.glob(f"{MIGRATION_PREFIX}*.py")):
        # m_001_create_songs -> ("m", "001", "create_songs")
        parts = mf.stem.split("_", 2)
        if len(parts) < 3:
            continue
        try:
            version = int(parts[1])
        except ValueError:
            continue

        module = importlib.import_module(f"{package}.{mf.stem}")
        change = getattr(module, "change", None)
        if not callable(change):
            raise MigrationError(
                f"Migration module {mf.name} does not define change()",
                version=version,
                name=parts[2],
            )
        found.append(Migration(version=version, name=parts[2], operations=tuple(change())))
        logger.debug("Discovered migration %03d %s", version, parts[2])

    return sort_migrations(found)


class MigrationRunner:
    """
    Applies pending migrations against an open aiosqlite connection.

    Usage:
        runner = MigrationRunner(conn)
        await runner.load(migrations)
        count = await runner.apply(migrations)
        runner.schema  # tables/columns after the run
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._schema = Schema()
        self._loaded = False

    @property
    def schema(self) -> Schema:
        return self._schema

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def _ensure_ledger(self) -> None:
        await self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
        await self._conn.commit()

    async def _applied_rows(self) -> dict[int, str]:
        await self._ensure_ledger()
        cursor = await self._conn.execute(
            f"SELECT version, applied_at FROM {LEDGER_TABLE} ORDER BY version"
        )
        rows = await cursor.fetchall()
        return {int(r[0]): str(r[1]) for r in rows}

    async def current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        applied = await self._applied_rows()
        return max(applied, default=0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, migrations: Sequence[Migration]) -> Schema:
        """Rebuild the in-memory schema from the migrations the ledger lists as applied."""
        known = {m.version: m for m in sort_migrations(migrations)}
        applied = await self._applied_rows()

        schema = Schema()
        for version in sorted(applied):
            migration = known.get(version)
            if migration is None:
                raise MigrationError(
                    f"Database has applied migration {version}, which is not known to this build.",
                    version=version,
                )
            for op in migration.operations:
                schema.apply(op)

        self._schema = schema
        self._loaded = True
        return schema

    async def status(self, migrations: Sequence[Migration]) -> list[MigrationState]:
        applied = await self._applied_rows()
        return [
            MigrationState(
                version=m.version,
                name=m.name,
                applied=m.version in applied,
                applied_at=applied.get(m.version),
            )
            for m in sort_migrations(migrations)
        ]

    async def apply(self, migrations: Sequence[Migration]) -> int:
        """
        Apply all pending migrations in ascending version order.

        Returns the number of migrations applied by this call. Raises
        `MigrationError` on the first failure; later migrations are not tried.
        """
        ordered = sort_migrations(migrations)
        if not self._loaded:
            await self.load(ordered)

        current = await self.current_version()
        pending = [m for m in ordered if m.version > current]
        if not pending:
            logger.info("Schema up to date at version %d", current)
            return 0

        logger.info("Found %d pending migration(s) after version %d", len(pending), current)

        applied = 0
        for migration in pending:
            await self._apply_one(migration)
            applied += 1

        logger.info("Applied %d migration(s); schema at version %d", applied, pending[-1].version)
        return applied

    async def _apply_one(self, migration: Migration) -> None:
        label = f"{migration.version:03d} {migration.name}"
        logger.info("Running migration %s", label)

        # Validate against a staged copy first so a bad descriptor never touches SQLite.
        staged = self._schema.copy()
        try:
            for op in migration.operations:
                staged.apply(op)
        except MigrationError as e:
            logger.error("Migration %s rejected: %s", label, e)
            raise MigrationError(
                f"Migration {label} failed: {e}",
                version=migration.version,
                name=migration.name,
            ) from e

        conn = self._conn
        await conn.commit()
        await conn.execute("BEGIN")
        try:
            for op in migration.operations:
                logger.debug("  %s", op.describe())
                await conn.execute(to_sql(op))
            await conn.execute(
                f"INSERT INTO {LEDGER_TABLE} (version, name) VALUES (?, ?)",
                (migration.version, migration.name),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            logger.error("Migration %s failed: %s", label, e)
            raise MigrationError(
                f"Migration {label} failed: {e}",
                version=migration.version,
                name=migration.name,
            ) from e

        self._schema = staged
        logger.info("Migration %s completed", label)
