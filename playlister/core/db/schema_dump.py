"""
Human-readable schema snapshot.

The dump is read back from SQLite itself (sqlite_master + PRAGMA table_info),
not from the in-memory `Schema`, so it shows what the database actually holds.
It is informational only; nothing in Playlister reads it.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from playlister.core.db.migrations import LEDGER_TABLE

logger = logging.getLogger(__name__)

HEADER = """\
# This file is auto-generated from the current state of the database.
# Edit the migrations instead and run `python -m playlister migrate`.
"""


async def list_tables(conn: aiosqlite.Connection) -> list[str]:
    """User tables, excluding SQLite internals and the migration ledger."""
    cursor = await conn.execute(
        """
        SELECT name FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%' AND name != ?
        ORDER BY name
        """,
        (LEDGER_TABLE,),
    )
    rows = await cursor.fetchall()
    return [str(r[0]) for r in rows]


async def table_columns(conn: aiosqlite.Connection, table: str) -> list[tuple[str, str, bool]]:
    """Return (name, sqlite type, is_primary_key) for each column of `table`."""
    # `table` comes from sqlite_master, never from user input.
    cursor = await conn.execute(f"PRAGMA table_info({table});")
    rows = await cursor.fetchall()
    return [(str(r[1]), str(r[2]), bool(r[5])) for r in rows]


async def render_schema(conn: aiosqlite.Connection) -> str:
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?;",
        (LEDGER_TABLE,),
    )
    version = 0
    if await cursor.fetchone() is not None:
        cursor = await conn.execute(f"SELECT MAX(version) FROM {LEDGER_TABLE};")
        row = await cursor.fetchone()
        version = int(row[0]) if row is not None and row[0] is not None else 0

    lines = [HEADER, f"version: {version}", ""]
    for table in await list_tables(conn):
        columns = await table_columns(conn, table)
        width = max((len(name) for name, _, _ in columns), default=0)
        lines.append(f"table {table}")
        for name, sql_type, pk in columns:
            suffix = "  primary key" if pk else ""
            lines.append(f"  {name.ljust(width)}  {sql_type}{suffix}".rstrip())
        lines.append("")

    return "\n".join(lines)


async def write_schema_dump(conn: aiosqlite.Connection, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(await render_schema(conn), encoding="utf-8")
    logger.info("Schema dump written to %s", target)
    return target
