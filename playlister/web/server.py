"""
Web Server Module for Playlister.

This module provides the WebServer class that creates and manages the
FastAPI application and registers the inspection routes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from playlister import __version__
from playlister.web.routes.api import register_api_routes

if TYPE_CHECKING:
    from playlister.core.catalog_db import CatalogDb

logger = logging.getLogger(__name__)


class WebServer:
    """
    FastAPI-based inspection server for a Playlister catalogue.

    The catalogue must already be open; the server never writes to it.
    """

    def __init__(self, catalog: CatalogDb) -> None:
        self.catalog = catalog

        self.app = FastAPI(
            title="Playlister",
            description="Read-only inspection API for the Playlister catalogue",
            version=__version__,
        )

        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._host = "127.0.0.1"
        self._port = 9292

        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "playlister"}

        register_api_routes(self.app, catalog=self.catalog)

    def _make_server(self, host: str, port: int) -> uvicorn.Server:
        self._host = host
        self._port = port
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        return self._server

    async def serve(self, host: str = "127.0.0.1", port: int = 9292) -> None:
        """Run the server until it is asked to exit."""
        server = self._make_server(host, port)
        logger.info("Web server listening on http://%s:%d", host, port)
        await server.serve()
        logger.info("Web server stopped")

    async def start(self, host: str = "127.0.0.1", port: int = 9292) -> None:
        """Start the server in a background task."""
        server = self._make_server(host, port)
        self._task = asyncio.create_task(server.serve())
        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
            self._server = None
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Web server stopped")

    @property
    def port(self) -> int:
        return self._port

    @property
    def host(self) -> str:
        return self._host
