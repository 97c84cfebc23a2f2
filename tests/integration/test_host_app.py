"""Integration tests: the reference host (restguard.main.create_app) driven
in-process over httpx ASGITransport.

Verifies end to end that:
  - override headers never reach the host's router on API requests
  - every API response carries the merged Vary header
  - anonymous API responses forbid edge caching
  - non-API routes are left alone
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from restguard.config import ApiConfig, Config
from restguard.main import create_app

pytestmark = pytest.mark.asyncio

VARY_ALL = "X-HTTP-Method-Override, X-HTTP-Method, X-Method-Override"


def _client(config: Config | None = None) -> AsyncClient:
    app = create_app(config or Config.defaults())
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestHostApi:

    async def test_override_header_not_observed(self) -> None:
        async with _client() as client:
            response = await client.get(
                "/wp-json/v2/status", headers={"X-HTTP-Method-Override": "HEAD"}
            )
        assert response.status_code == 200
        assert response.json() == {"method": "GET", "override_headers": []}

    async def test_all_variants_stripped(self) -> None:
        async with _client() as client:
            response = await client.get(
                "/wp-json/v2/status",
                headers={
                    "X-HTTP-Method-Override": "HEAD",
                    "X-HTTP-Method": "PUT",
                    "X-Method-Override": "DELETE",
                },
            )
        assert response.json()["override_headers"] == []

    async def test_api_response_headers(self) -> None:
        async with _client() as client:
            response = await client.get("/wp-json/v2/status")
        assert response.headers["Vary"] == VARY_ALL
        assert response.headers["Cache-Control"] == "no-cache, must-revalidate, max-age=0"
        assert response.headers["Pragma"] == "no-cache"

    async def test_post_keeps_its_method(self) -> None:
        async with _client() as client:
            response = await client.post(
                "/wp-json/v2/status", headers={"X-HTTP-Method-Override": "DELETE"}
            )
        assert response.json()["method"] == "POST"

    async def test_custom_prefix(self) -> None:
        config = Config(api=ApiConfig(prefix="api"))
        async with _client(config) as client:
            response = await client.get(
                "/api/v2/status", headers={"X-HTTP-Method": "HEAD"}
            )
            root = await client.get("/")
        assert response.json() == {"method": "GET", "override_headers": []}
        assert root.json()["api"] == "/api/"

    async def test_root_is_not_api(self) -> None:
        async with _client() as client:
            response = await client.get("/")
        assert response.status_code == 200
        assert "vary" not in response.headers
        assert "pragma" not in response.headers

    async def test_unknown_api_route_error_body(self) -> None:
        """Router 404s go through the host's HTTP error handler and stay guarded."""
        async with _client() as client:
            response = await client.get("/wp-json/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}
        assert response.headers["Vary"] == VARY_ALL
        assert "max-age=0" in response.headers["Cache-Control"]
