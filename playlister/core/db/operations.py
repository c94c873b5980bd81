"""
Schema operation descriptors and the in-memory schema they mutate.

Migrations describe their changes as data (`CreateTable`, `AddColumn`) instead
of executing arbitrary code. This module knows how to:

- validate an operation against the current `Schema`
- apply it to a `Schema` (pure, no DB)
- render the DDL statement SQLite needs for it

Design notes:
- Every table gets an implicit `id INTEGER PRIMARY KEY AUTOINCREMENT` column.
- Column types are logical names mapped to SQLite storage types; anything
  outside `COLUMN_TYPES` is rejected before any SQL runs.
- Identifiers are validated with `_IDENTIFIER_RE` because they are interpolated
  into DDL (SQLite cannot bind identifiers as parameters).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final, Union

from playlister.core import MigrationError

PRIMARY_KEY: Final[str] = "id"

# Logical column type -> SQLite storage type.
COLUMN_TYPES: Final[dict[str, str]] = {
    "string": "TEXT",
    "text": "TEXT",
    "integer": "INTEGER",
    "float": "REAL",
    "decimal": "NUMERIC",
    "boolean": "INTEGER",
    "date": "TEXT",
    "datetime": "TEXT",
}

_IDENTIFIER_RE: Final = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(name: str, *, kind: str = "identifier") -> str:
    if not _IDENTIFIER_RE.match(name):
        raise MigrationError(f"Invalid {kind} name: {name!r}")
    return name


@dataclass(frozen=True, slots=True)
class Column:
    """A (name, logical type) pair."""

    name: str
    type: str

    @property
    def sql_type(self) -> str:
        try:
            return COLUMN_TYPES[self.type]
        except KeyError:
            raise MigrationError(
                f"Invalid column type {self.type!r} for column {self.name!r}; "
                f"expected one of {', '.join(sorted(COLUMN_TYPES))}"
            ) from None

    def ddl(self) -> str:
        check_identifier(self.name, kind="column")
        return f"{self.name} {self.sql_type}"


@dataclass(frozen=True, slots=True)
class CreateTable:
    table: str
    columns: tuple[Column, ...] = ()

    def describe(self) -> str:
        return f"create_table {self.table}"


@dataclass(frozen=True, slots=True)
class AddColumn:
    table: str
    column: Column

    def describe(self) -> str:
        return f"add_column {self.table}.{self.column.name} ({self.column.type})"


Operation = Union[CreateTable, AddColumn]


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Table name plus its ordered columns (the primary key first)."""

    name: str
    columns: tuple[Column, ...]

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def has_column(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)


@dataclass
class Schema:
    """
    In-memory view of all tables created by applied migrations.

    Only `apply()` mutates it; the migration runner is its only writer.
    """

    tables: dict[str, TableSchema] = field(default_factory=dict)

    def copy(self) -> Schema:
        return Schema(tables=dict(self.tables))

    def get(self, table: str) -> TableSchema | None:
        return self.tables.get(table)

    def __contains__(self, table: object) -> bool:
        return table in self.tables

    def apply(self, op: Operation) -> None:
        """Validate and apply one operation. Raises MigrationError."""
        if isinstance(op, CreateTable):
            check_identifier(op.table, kind="table")
            if op.table in self.tables:
                raise MigrationError(f"Table {op.table!r} already exists")
            names = [PRIMARY_KEY]
            for column in op.columns:
                column.ddl()
                if column.name in names:
                    raise MigrationError(
                        f"Duplicate column {column.name!r} in table {op.table!r}"
                    )
                names.append(column.name)
            self.tables[op.table] = TableSchema(
                name=op.table,
                columns=(Column(PRIMARY_KEY, "integer"), *op.columns),
            )
        elif isinstance(op, AddColumn):
            existing = self.tables.get(op.table)
            if existing is None:
                raise MigrationError(f"Cannot add column to missing table {op.table!r}")
            op.column.ddl()
            if existing.has_column(op.column.name):
                raise MigrationError(
                    f"Column {op.table}.{op.column.name} already exists"
                )
            self.tables[op.table] = TableSchema(
                name=op.table,
                columns=(*existing.columns, op.column),
            )
        else:
            raise MigrationError(f"Unknown schema operation: {op!r}")


def to_sql(op: Operation) -> str:
    """Render the DDL for an operation (call after `Schema.apply` validated it)."""
    if isinstance(op, CreateTable):
        columns = ",\n    ".join(
            [f"{PRIMARY_KEY} INTEGER PRIMARY KEY AUTOINCREMENT"] + [c.ddl() for c in op.columns]
        )
        return f"CREATE TABLE {op.table} (\n    {columns}\n)"
    if isinstance(op, AddColumn):
        return f"ALTER TABLE {op.table} ADD COLUMN {op.column.ddl()}"
    raise MigrationError(f"Unknown schema operation: {op!r}")


# Small constructors so migration modules read declaratively.


def create_table(table: str, **columns: str) -> CreateTable:
    return CreateTable(table=table, columns=tuple(Column(n, t) for n, t in columns.items()))


def add_column(table: str, name: str, type: str) -> AddColumn:
    return AddColumn(table=table, column=Column(name, type))
