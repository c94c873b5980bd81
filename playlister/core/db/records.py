"""
Records and the small CRUD layer the association resolver builds on.

Design:
- `Record` is a plain value holder: its record type plus column values.
  Column values are readable as attributes (`song.artist_id`) or items.
- `RecordStore` takes an open `aiosqlite.Connection` and reads the live
  in-memory `Schema` from the migration runner, so it always matches the
  currently applied migrations.
- Every table/column name is checked against that schema before it reaches
  SQL; values are always bound as parameters.
- This is NOT a query DSL: equality filters, ordering by primary key, and
  limit/offset are all there is.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Mapping

import aiosqlite

from playlister.core import NotFoundError, RecordNotSaved, UnknownColumnError
from playlister.core.associations import Registry, RecordType
from playlister.core.db.migrations import MigrationRunner
from playlister.core.db.operations import PRIMARY_KEY, TableSchema

logger = logging.getLogger(__name__)


class Record:
    """One row of a record type."""

    __slots__ = ("record_type", "_values")

    def __init__(self, record_type: RecordType, values: Mapping[str, Any] | None = None) -> None:
        self.record_type = record_type
        self._values: dict[str, Any] = dict(values or {})

    @property
    def id(self) -> int | None:
        value = self._values.get(PRIMARY_KEY)
        return int(value) if value is not None else None

    @property
    def persisted(self) -> bool:
        return self.id is not None

    def get(self, column: str, default: Any = None) -> Any:
        return self._values.get(column, default)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def restore(self, values: Mapping[str, Any]) -> None:
        """Replace every column value, e.g. with an earlier `to_dict()` snapshot."""
        self._values = dict(values)

    def __getitem__(self, column: str) -> Any:
        return self._values[column]

    def __setitem__(self, column: str, value: Any) -> None:
        self._values[column] = value

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(f"{self.record_type.name} has no column {name!r}") from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        if self.id is None or other.id is None:
            return self is other
        return self.record_type.name == other.record_type.name and self.id == other.id

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{self.record_type.name}({fields})"


def _where_clause(criteria: Mapping[str, Any]) -> tuple[str, list[Any]]:
    parts: list[str] = []
    params: list[Any] = []
    for column, value in criteria.items():
        if value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ?")
            params.append(value)
    if not parts:
        return "", params
    return " WHERE " + " AND ".join(parts), params


class RecordStore:
    """
    Async CRUD over the tables created by applied migrations.

    Usage:
        store = RecordStore(conn, registry, runner)
        prince = await store.create("Artist", name="Prince")
        same = await store.find("Artist", prince.id)
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        registry: Registry,
        runner: MigrationRunner,
    ) -> None:
        self._conn = conn
        self._registry = registry
        self._runner = runner
        self._in_transaction = False

    @property
    def registry(self) -> Registry:
        return self._registry

    # ------------------------------------------------------------------
    # Schema helpers
    # ------------------------------------------------------------------

    def record_type(self, record_type: str | RecordType) -> RecordType:
        if isinstance(record_type, RecordType):
            return record_type
        return self._registry.get(record_type)

    def table_schema(self, record_type: str | RecordType) -> TableSchema | None:
        """Current schema of the type's table, or None when it is not migrated yet."""
        return self._runner.schema.get(self.record_type(record_type).table)

    def _require_table(self, record_type: RecordType) -> TableSchema:
        table = self._runner.schema.get(record_type.table)
        if table is None:
            raise NotFoundError(
                f"Table {record_type.table!r} for {record_type.name} does not exist; run migrations first."
            )
        return table

    @staticmethod
    def _check_columns(table: TableSchema, columns: Iterable[str]) -> None:
        for column in columns:
            if not table.has_column(column):
                raise UnknownColumnError(f"Unknown column {table.name}.{column}")

    def _to_record(self, record_type: RecordType, row: aiosqlite.Row) -> Record:
        return Record(record_type, {key: row[key] for key in row.keys()})

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Group several writes; commit on success, roll back on any error."""
        if self._in_transaction:
            yield
            return
        await self._conn.commit()
        await self._conn.execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            await self._conn.rollback()
            raise
        else:
            await self._conn.commit()
        finally:
            self._in_transaction = False

    async def _maybe_commit(self) -> None:
        if not self._in_transaction:
            await self._conn.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def new(self, record_type: str | RecordType, /, **values: Any) -> Record:
        """Build an unsaved record; columns are checked against the schema."""
        rt = self.record_type(record_type)
        self._check_columns(self._require_table(rt), values)
        return Record(rt, values)

    async def create(self, record_type: str | RecordType, /, **values: Any) -> Record:
        record = self.new(record_type, **values)
        await self.save(record)
        return record

    async def save(self, record: Record) -> Record:
        """Insert an unsaved record (assigning its id) or update a persisted one."""
        rt = record.record_type
        table = self._require_table(rt)
        values = {k: v for k, v in record.to_dict().items() if k != PRIMARY_KEY}
        self._check_columns(table, values)

        if record.persisted:
            if values:
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor = await self._conn.execute(
                    f"UPDATE {table.name} SET {assignments} WHERE {PRIMARY_KEY} = ?",
                    (*values.values(), record.id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(f"{rt.name} {record.id} no longer exists")
            logger.debug("Updated %s %s", rt.name, record.id)
        else:
            if values:
                columns = ", ".join(values)
                placeholders = ", ".join("?" for _ in values)
                cursor = await self._conn.execute(
                    f"INSERT INTO {table.name} ({columns}) VALUES ({placeholders})",
                    tuple(values.values()),
                )
            else:
                cursor = await self._conn.execute(f"INSERT INTO {table.name} DEFAULT VALUES")
            record[PRIMARY_KEY] = int(cursor.lastrowid)
            # Columns not given explicitly read back as NULL.
            for column in table.column_names:
                if column not in record.to_dict():
                    record[column] = None
            logger.debug("Inserted %s %s", rt.name, record.id)

        await self._maybe_commit()
        return record

    async def destroy(self, record: Record) -> None:
        if not record.persisted:
            raise RecordNotSaved(f"Cannot destroy an unsaved {record.record_type.name}")
        table = self._require_table(record.record_type)
        await self._conn.execute(
            f"DELETE FROM {table.name} WHERE {PRIMARY_KEY} = ?",
            (record.id,),
        )
        await self._maybe_commit()
        record[PRIMARY_KEY] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find(self, record_type: str | RecordType, record_id: int) -> Record | None:
        return await self.find_by(record_type, **{PRIMARY_KEY: int(record_id)})

    async def find_by(self, record_type: str | RecordType, /, **criteria: Any) -> Record | None:
        rows = await self.where(record_type, limit=1, **criteria)
        return rows[0] if rows else None

    async def iter_where(
        self,
        record_type: str | RecordType,
        /,
        *,
        limit: int | None = None,
        offset: int = 0,
        **criteria: Any,
    ) -> AsyncIterator[Record]:
        """Yield matching records in primary key order without materializing them all."""
        rt = self.record_type(record_type)
        table = self._require_table(rt)
        self._check_columns(table, criteria)

        where, params = _where_clause(criteria)
        sql = f"SELECT * FROM {table.name}{where} ORDER BY {PRIMARY_KEY} ASC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend((int(limit), int(offset)))

        async with self._conn.execute(sql, params) as cursor:
            async for row in cursor:
                yield self._to_record(rt, row)

    async def where(
        self,
        record_type: str | RecordType,
        /,
        *,
        limit: int | None = None,
        offset: int = 0,
        **criteria: Any,
    ) -> list[Record]:
        return [
            r async for r in self.iter_where(record_type, limit=limit, offset=offset, **criteria)
        ]

    async def all(
        self,
        record_type: str | RecordType,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        return await self.where(record_type, limit=limit, offset=offset)

    async def count(self, record_type: str | RecordType, /, **criteria: Any) -> int:
        rt = self.record_type(record_type)
        table = self._require_table(rt)
        self._check_columns(table, criteria)
        where, params = _where_clause(criteria)
        cursor = await self._conn.execute(f"SELECT COUNT(*) AS c FROM {table.name}{where}", params)
        row = await cursor.fetchone()
        return int(row["c"]) if row is not None else 0
