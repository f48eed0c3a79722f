"""
M-Hike API: Application-Level Tests
=====================================

What:  Health endpoint, request ID propagation and the uniform error body.
"""

import pytest


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_reports_connected_database(self, client):
        """Health reports the database as connected with version and uptime."""
        response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["version"]
        assert body["uptime_seconds"] >= 0


class TestRequestId:

    @pytest.mark.asyncio
    async def test_generated_request_id_is_returned(self, client):
        """Requests without an ID get a short generated one."""
        response = await client.get("/api/health")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_request_id_is_echoed_in_header_and_error_body(self, client):
        """A well-formed client ID is kept in the header and in error bodies."""
        response = await client.get(
            "/api/auth/profile", headers={"X-Request-ID": "trace-abc.1"}
        )

        assert response.status_code == 401
        assert response.headers["X-Request-ID"] == "trace-abc.1"
        assert response.json()["request_id"] == "trace-abc.1"

    @pytest.mark.asyncio
    async def test_malformed_client_request_id_is_replaced(self, client):
        """A client ID with unsafe characters is not echoed back."""
        response = await client.get(
            "/api/health", headers={"X-Request-ID": "bad id with spaces"}
        )
        assert response.headers["X-Request-ID"] != "bad id with spaces"


class TestErrorShape:

    @pytest.mark.asyncio
    async def test_path_validation_is_400_not_422(self, client, auth_headers):
        """Path parameter errors use the uniform 400 validation body."""
        headers = await auth_headers("alice")
        response = await client.get("/api/hikes/not-a-number", headers=headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["field"] == "hike_id"
        assert set(body) == {"error", "message", "details", "request_id"}

    @pytest.mark.asyncio
    async def test_not_found_body(self, client, auth_headers):
        """Missing resources return the not_found error code and message."""
        headers = await auth_headers("alice")
        response = await client.get("/api/hikes/observations/12345", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
        assert response.json()["message"] == "Observation not found"

    @pytest.mark.asyncio
    async def test_missing_upload_is_404(self, client):
        """Unknown upload names are not served."""
        response = await client.get("/uploads/nothing-here.png")
        assert response.status_code == 404
