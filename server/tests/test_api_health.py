"""Service-level endpoints: liveness, readiness, info, metrics and docs."""

import pytest
from httpx import ASGITransport, AsyncClient

from rental_core.main import SERVICE_NAME, create_app


@pytest.mark.asyncio
async def test_liveness_and_readiness():
    """/health never touches the database; /ready runs a round trip against it."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == SERVICE_NAME

        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok"}


@pytest.mark.asyncio
async def test_info_reports_reservation_settings():
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/info")

    assert response.status_code == 200
    data = response.json()
    assert data["reservation"]["hold_ttl_minutes"] == 15
    assert data["reservation"]["minimum_driver_age"] == 21
    assert data["features"]["idempotency"] is True


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "alerts_open" in response.text


@pytest.mark.asyncio
async def test_openapi_docs():
    """OpenAPI docs are served in development."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/docs")
        assert response.status_code == 200
