"""Integration tests for AuthMiddleware."""

from datetime import timedelta

from httpx import AsyncClient


class TestPublicPaths:
    """Tests that public paths are accessible without auth."""

    async def test_health_check(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"status": "healthy"}

    async def test_root(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/")
        assert resp.status_code == 200

    async def test_docs(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/docs")
        assert resp.status_code == 200


class TestProtectedPaths:
    """Tests that protected paths require a valid access token."""

    async def test_without_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/api/v1/sessions")
        assert resp.status_code == 401
        data = resp.json()
        assert data["status"] == 401
        assert data["code"] == "MISSING_TOKEN"

    async def test_with_invalid_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.get(
            "/api/v1/sessions",
            headers={"Authorization": "Bearer invalid.token.here"},
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_with_expired_token(
        self, async_client: AsyncClient, token_factory
    ) -> None:
        token = token_factory(1, expires_in=timedelta(minutes=-1))
        resp = await async_client.get(
            "/api/v1/sessions", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "TOKEN_EXPIRED"

    async def test_refresh_token_rejected(
        self, async_client: AsyncClient, token_factory
    ) -> None:
        token = token_factory(1, token_type="refresh")
        resp = await async_client.get(
            "/api/v1/sessions", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_unknown_role_rejected(
        self, async_client: AsyncClient, token_factory
    ) -> None:
        token = token_factory(1, role="admin")
        resp = await async_client.get(
            "/api/v1/sessions", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401

    async def test_with_valid_token(
        self, async_client: AsyncClient, auth_headers
    ) -> None:
        resp = await async_client.get("/api/v1/sessions", headers=auth_headers(1))
        assert resp.status_code == 200
        assert resp.json()["data"] == {"sessions": []}

    async def test_companion_route_requires_companion_role(
        self, async_client: AsyncClient, auth_headers
    ) -> None:
        resp = await async_client.post(
            "/api/v1/companion/close",
            json={"session_id": 1},
            headers=auth_headers(1, "user"),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "AUTHORIZATION_ERROR"
