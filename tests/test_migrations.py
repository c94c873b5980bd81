"""
Tests for playlister.core.db (operations, migrations, schema dump).

These tests verify:
- Operation descriptors validate against the in-memory Schema
- Shipped migrations are discovered in order
- MigrationRunner applies pending migrations once, in order, and fails fast
- The schema dump reflects the migrated database
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest

from playlister.core import MigrationError
from playlister.core.catalog_db import CatalogDb
from playlister.core.db.migrations import (
    LEDGER_TABLE,
    Migration,
    MigrationRunner,
    discover_migrations,
    sort_migrations,
)
from playlister.core.db.operations import (
    AddColumn,
    Column,
    CreateTable,
    Schema,
    add_column,
    create_table,
    to_sql,
)
from playlister.core.db.schema_dump import render_schema

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def conn() -> aiosqlite.Connection:
    """Raw in-memory connection for runner-level tests."""
    conn = await aiosqlite.connect(":memory:")
    yield conn
    await conn.close()


@pytest.fixture
async def db() -> CatalogDb:
    """Catalogue with the shipped migrations, not yet migrated."""
    db = CatalogDb(":memory:")
    await db.open()
    yield db
    await db.close()


async def table_names(conn: aiosqlite.Connection) -> set[str]:
    cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row[0] for row in await cursor.fetchall()}


# =============================================================================
# Operation descriptor tests
# =============================================================================


class TestSchemaOperations:
    """Tests for Schema.apply() and DDL rendering."""

    def test_create_table_adds_primary_key(self) -> None:
        schema = Schema()
        schema.apply(create_table("songs", name="string"))

        songs = schema.get("songs")
        assert songs is not None
        assert songs.column_names == ("id", "name")
        assert songs.columns[1] == Column("name", "string")

    def test_add_column_appends_in_order(self) -> None:
        schema = Schema()
        schema.apply(create_table("songs", name="string"))
        schema.apply(add_column("songs", "artist_id", "integer"))
        schema.apply(add_column("songs", "genre_id", "integer"))

        assert schema.get("songs").column_names == ("id", "name", "artist_id", "genre_id")

    def test_duplicate_table_rejected(self) -> None:
        schema = Schema()
        schema.apply(create_table("songs"))
        with pytest.raises(MigrationError, match="already exists"):
            schema.apply(create_table("songs"))

    def test_add_column_to_missing_table_rejected(self) -> None:
        with pytest.raises(MigrationError, match="missing table"):
            Schema().apply(add_column("songs", "artist_id", "integer"))

    def test_duplicate_column_rejected(self) -> None:
        schema = Schema()
        schema.apply(create_table("songs", name="string"))
        with pytest.raises(MigrationError, match="already exists"):
            schema.apply(add_column("songs", "name", "text"))

    def test_explicit_id_column_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Duplicate column"):
            Schema().apply(create_table("songs", id="integer"))

    def test_invalid_column_type_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Invalid column type"):
            Schema().apply(create_table("songs", name="varchar"))

    def test_invalid_identifier_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Invalid table name"):
            Schema().apply(CreateTable("songs; DROP TABLE x", ()))

    def test_failed_apply_leaves_copy_untouched(self) -> None:
        schema = Schema()
        schema.apply(create_table("songs", name="string"))
        staged = schema.copy()
        staged.apply(add_column("songs", "artist_id", "integer"))

        assert schema.get("songs").column_names == ("id", "name")
        assert staged.get("songs").column_names == ("id", "name", "artist_id")

    def test_to_sql(self) -> None:
        create = to_sql(create_table("genres", name="string"))
        assert create.startswith("CREATE TABLE genres")
        assert "id INTEGER PRIMARY KEY AUTOINCREMENT" in create
        assert "name TEXT" in create

        alter = to_sql(AddColumn("songs", Column("genre_id", "integer")))
        assert alter == "ALTER TABLE songs ADD COLUMN genre_id INTEGER"


# =============================================================================
# Discovery tests
# =============================================================================


class TestDiscovery:
    """Tests for migration discovery and ordering."""

    def test_shipped_migrations_in_order(self) -> None:
        migrations = discover_migrations()
        assert [(m.version, m.name) for m in migrations] == [
            (1, "create_songs"),
            (2, "create_artists"),
            (3, "create_genres"),
            (4, "add_artist_to_songs"),
            (5, "add_genre_to_songs"),
        ]

    def test_sort_migrations_orders_by_version(self) -> None:
        m3 = Migration(3, "c", ())
        m1 = Migration(1, "a", ())
        assert sort_migrations([m3, m1]) == [m1, m3]

    def test_duplicate_versions_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Duplicate migration version 2"):
            sort_migrations([Migration(2, "a", ()), Migration(2, "b", ())])

    def test_non_positive_version_rejected(self) -> None:
        with pytest.raises(MigrationError, match="positive"):
            sort_migrations([Migration(0, "zero", ())])

    def test_module_without_change_rejected(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        package = tmp_path / "versions_missing_change"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "m_001_create_songs.py").write_text("OPERATIONS = []\n")
        monkeypatch.syspath_prepend(str(tmp_path))

        with pytest.raises(MigrationError, match="m_001_create_songs.py does not define change") as exc:
            discover_migrations("versions_missing_change")
        assert exc.value.version == 1
        assert exc.value.name == "create_songs"


# =============================================================================
# MigrationRunner tests
# =============================================================================


class TestMigrationRunner:
    """Tests for applying migrations against SQLite."""

    async def test_migrate_builds_songs_table(self, db: CatalogDb) -> None:
        """The shipped migrations leave songs with id, name, artist_id, genre_id."""
        applied = await db.migrate()
        assert applied == 5

        assert db.schema.get("songs").column_names == ("id", "name", "artist_id", "genre_id")
        assert db.schema.get("artists").column_names == ("id", "name")
        assert db.schema.get("genres").column_names == ("id", "name")
        assert await db.schema_version() == 5

    async def test_migrate_twice_is_idempotent(self, db: CatalogDb) -> None:
        await db.migrate()
        first = {name: t.column_names for name, t in db.schema.tables.items()}

        assert await db.migrate() == 0
        second = {name: t.column_names for name, t in db.schema.tables.items()}

        assert first == second
        assert await db.schema_version() == 5

    async def test_status_reports_applied_flags(self, db: CatalogDb) -> None:
        states = await db.migration_status()
        assert all(not s.applied for s in states)

        await db.migrate()
        states = await db.migration_status()
        assert all(s.applied for s in states)
        assert all(s.applied_at for s in states)

    async def test_pending_is_above_highest_applied(self, conn: aiosqlite.Connection) -> None:
        runner = MigrationRunner(conn)
        first = [Migration(1, "create_songs", (create_table("songs", name="string"),))]
        assert await runner.apply(first) == 1

        more = first + [
            Migration(2, "create_artists", (create_table("artists", name="string"),)),
            Migration(3, "add_artist_to_songs", (add_column("songs", "artist_id", "integer"),)),
        ]
        assert await runner.apply(more) == 2
        assert await runner.current_version() == 3
        assert runner.schema.get("songs").column_names == ("id", "name", "artist_id")

    async def test_fails_fast_and_keeps_earlier_migrations(
        self, conn: aiosqlite.Connection
    ) -> None:
        """A rejected migration stops the run; earlier ones stay applied."""
        runner = MigrationRunner(conn)
        migrations = [
            Migration(1, "create_songs", (create_table("songs", name="string"),)),
            Migration(2, "broken", (add_column("albums", "title", "string"),)),
            Migration(3, "create_genres", (create_table("genres", name="string"),)),
        ]

        with pytest.raises(MigrationError) as exc_info:
            await runner.apply(migrations)

        assert exc_info.value.version == 2
        assert exc_info.value.name == "broken"
        assert await runner.current_version() == 1
        assert "songs" in runner.schema
        assert "genres" not in runner.schema
        assert "genres" not in await table_names(conn)

    async def test_sqlite_failure_rolls_back_migration(self, conn: aiosqlite.Connection) -> None:
        """A failing statement undoes the whole migration and writes no ledger row."""
        await conn.execute("CREATE TABLE artists (id INTEGER PRIMARY KEY)")
        await conn.commit()

        runner = MigrationRunner(conn)
        migrations = [
            Migration(
                1,
                "create_both",
                (create_table("songs", name="string"), create_table("artists", name="string")),
            )
        ]

        with pytest.raises(MigrationError) as exc_info:
            await runner.apply(migrations)

        assert isinstance(exc_info.value.__cause__, aiosqlite.Error)
        assert "songs" not in await table_names(conn)
        assert await runner.current_version() == 0
        assert "songs" not in runner.schema

    async def test_load_rebuilds_schema_from_ledger(self, conn: aiosqlite.Connection) -> None:
        migrations = discover_migrations()
        await MigrationRunner(conn).apply(migrations)

        fresh = MigrationRunner(conn)
        schema = await fresh.load(migrations)
        assert schema.get("songs").column_names == ("id", "name", "artist_id", "genre_id")

    async def test_unknown_applied_version_rejected(self, conn: aiosqlite.Connection) -> None:
        migrations = discover_migrations()
        await MigrationRunner(conn).apply(migrations)

        with pytest.raises(MigrationError, match="not known"):
            await MigrationRunner(conn).load(migrations[:3])

    async def test_drop_discards_everything(self, db: CatalogDb) -> None:
        await db.migrate()
        await db.records.create("Artist", name="Prince")

        dropped = await db.drop()
        assert set(dropped) == {"songs", "artists", "genres", LEDGER_TABLE}
        assert db.schema.tables == {}
        assert await db.schema_version() == 0

        # And it can be migrated again from scratch.
        assert await db.migrate() == 5
        assert await db.records.count("Artist") == 0


# =============================================================================
# Schema dump tests
# =============================================================================


class TestSchemaDump:
    """Tests for the generated schema snapshot."""

    async def test_dump_written_after_migrate(self, db: CatalogDb, tmp_path: Path) -> None:
        target = tmp_path / "db" / "schema.txt"
        await db.migrate(schema_dump=target)

        text = target.read_text(encoding="utf-8")
        assert "version: 5" in text
        assert "table songs" in text
        assert "artist_id" in text
        assert "genre_id" in text
        assert LEDGER_TABLE not in text

    async def test_render_empty_database(self, conn: aiosqlite.Connection) -> None:
        text = await render_schema(conn)
        assert "version: 0" in text
        assert "table " not in text
