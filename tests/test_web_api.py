"""
Tests for playlister.web (FastAPI inspection API).

These tests verify:
- Health check
- Schema and migration status endpoints
- Record listing/lookup and association resolution over HTTP
- Error mapping (404 unknown type/record/association, 503 unmigrated schema)
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from playlister.core.catalog_db import CatalogDb
from playlister.web.server import WebServer

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def db() -> CatalogDb:
    """Migrated in-memory catalogue with Prince's Purple Rain."""
    db = CatalogDb(":memory:")
    await db.open()
    await db.migrate()

    prince = await db.records.create("Artist", name="Prince")
    pop = await db.records.create("Genre", name="Pop")
    await db.associations.create(prince, "songs", name="Purple Rain", genre_id=pop.id)
    await db.associations.create(prince, "songs", name="When Doves Cry", genre_id=pop.id)

    yield db
    await db.close()


@pytest.fixture
async def client(db: CatalogDb) -> AsyncClient:
    """Create an async HTTP client for testing."""
    server = WebServer(db)
    transport = ASGITransport(app=server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Health / Schema
# =============================================================================


class TestHealthCheck:
    async def test_health_check(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "server": "playlister"}


class TestSchemaEndpoints:
    """Tests for /api/schema and /api/migrations."""

    async def test_schema(self, client: AsyncClient) -> None:
        response = await client.get("/api/schema")
        assert response.status_code == 200
        data = response.json()

        assert data["version"] == 5
        tables = {t["name"]: [c["name"] for c in t["columns"]] for t in data["tables"]}
        assert tables["songs"] == ["id", "name", "artist_id", "genre_id"]
        assert set(tables) == {"artists", "genres", "songs"}

    async def test_migrations(self, client: AsyncClient) -> None:
        response = await client.get("/api/migrations")
        assert response.status_code == 200
        data = response.json()

        assert data["count"] == 5
        assert data["pending"] == 0
        assert data["migrations"][0]["name"] == "create_songs"
        assert all(m["applied"] for m in data["migrations"])


# =============================================================================
# Records
# =============================================================================


class TestRecordEndpoints:
    """Tests for /api/records/*."""

    async def test_list_by_table_or_type_name(self, client: AsyncClient) -> None:
        for name in ("songs", "Song", "song"):
            response = await client.get(f"/api/records/{name}")
            assert response.status_code == 200
            data = response.json()
            assert data["count"] == 2
            assert [r["name"] for r in data["records"]] == ["Purple Rain", "When Doves Cry"]

    async def test_list_paging(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/songs", params={"offset": 1, "limit": 1})
        data = response.json()
        assert data["count"] == 2
        assert [r["name"] for r in data["records"]] == ["When Doves Cry"]

    async def test_get_record(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/artists/1")
        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "Artist"
        assert data["name"] == "Prince"
        assert data["associations"] == ["genres", "songs"]

    async def test_has_many(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/artists/1/songs")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert all(r["artist_id"] == 1 for r in data["records"])

    async def test_through(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/genres/1/artists")
        data = response.json()
        assert data["count"] == 1
        assert data["records"][0]["name"] == "Prince"

    async def test_belongs_to(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/songs/1/artist")
        assert response.status_code == 200
        assert response.json()["record"]["name"] == "Prince"

    async def test_unknown_type(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/albums")
        assert response.status_code == 404

    async def test_missing_record(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/songs/99")
        assert response.status_code == 404

    async def test_unknown_association(self, client: AsyncClient) -> None:
        response = await client.get("/api/records/artists/1/albums")
        assert response.status_code == 404


class TestUnmigrated:
    async def test_records_before_migrate(self) -> None:
        db = CatalogDb(":memory:")
        await db.open()
        try:
            transport = ASGITransport(app=WebServer(db).app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get("/api/records/songs")
                assert response.status_code == 503

                response = await client.get("/api/migrations")
                assert response.json()["pending"] == 5
        finally:
            await db.close()
