"""
Route modules for the Playlister web server.

Each module exposes a `register_*_routes(app, ...)` function.
"""

from playlister.web.routes.api import register_api_routes

__all__ = ["register_api_routes"]
