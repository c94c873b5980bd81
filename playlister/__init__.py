"""
Playlister - a small Songs / Artists / Genres catalogue.

Playlister keeps its SQLite schema in versioned, forward-only migrations and
resolves BelongsTo / HasMany / HasManyThrough associations between records.
"""

__version__ = "0.1.0"
__author__ = "Playlister Contributors"
__license__ = "GPL-2.0"

from playlister.core.catalog_db import CatalogDb

__all__ = ["CatalogDb", "__version__"]
