from __future__ import annotations

from playlister.core.db.operations import Operation, add_column


def change() -> list[Operation]:
    # songs.artist_id -> artists.id (Song belongs to Artist)
    return [add_column("songs", "artist_id", "integer")]
