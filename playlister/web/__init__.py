"""
Web layer for Playlister.

A small, read-only FastAPI application for inspecting the catalogue:
schema, migration ledger, records and their associations.
"""

from playlister.web.server import WebServer

__all__ = ["WebServer"]
