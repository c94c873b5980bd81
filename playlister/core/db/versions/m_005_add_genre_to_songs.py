from __future__ import annotations

from playlister.core.db.operations import Operation, add_column


def change() -> list[Operation]:
    return [add_column("songs", "genre_id", "integer")]
