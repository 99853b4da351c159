"""
Tests for health endpoints and application-level error handling.
"""

from storiesfun.database import normalize_database_url


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "operational"


async def test_basic_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "testing"


async def test_detailed_health(client):
    """
    Test the dependency report.

    Arrange: In-memory database, cache in local mode
    Act: GET /api/health/detailed
    Assert: Database healthy, cache on the memory backend
    """
    response = await client.get("/api/health/detailed")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"]["database"]["connection"] is True
    assert body["services"]["cache"]["backend"] == "memory"


async def test_invalid_json_body(client):
    response = await client.post(
        "/api/comments",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Invalid JSON",
        "message": "Request body must be valid JSON",
    }


async def test_unknown_route_uses_error_shape(client):
    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_normalize_database_url():
    assert normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"
