from __future__ import annotations

from playlister.core.db.operations import Operation, create_table


def change() -> list[Operation]:
    return [create_table("songs", name="string")]
