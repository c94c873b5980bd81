"""
Playlister record types: Song, Artist, Genre.

    Song   belongs to an Artist and a Genre
    Artist has many songs, and many genres through its songs
    Genre  has many songs, and many artists through its songs
"""

from __future__ import annotations

from playlister.core.associations import BelongsTo, HasMany, HasManyThrough, Registry


def build_registry() -> Registry:
    """Declare the catalogue's record types and return the frozen registry."""
    registry = Registry()
    registry.define(
        "Song",
        BelongsTo("artist", "Artist"),
        BelongsTo("genre", "Genre"),
    )
    registry.define(
        "Artist",
        HasMany("songs", "Song"),
        HasManyThrough("genres", through="songs"),
    )
    registry.define(
        "Genre",
        HasMany("songs", "Song"),
        HasManyThrough("artists", through="songs"),
    )
    return registry.freeze()
