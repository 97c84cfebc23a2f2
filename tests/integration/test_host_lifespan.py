"""Integration tests: the reference host driven through Starlette's TestClient,
covering lifespan readiness and unhandled endpoint errors.
"""

from __future__ import annotations

from starlette.testclient import TestClient

from restguard.config import Config
from restguard.main import create_app


class TestHostLifespan:

    def test_health_before_startup(self) -> None:
        client = TestClient(create_app(Config.defaults()))
        assert client.get("/health").status_code == 503

    def test_health_after_startup(self) -> None:
        app = create_app(Config.defaults())
        with TestClient(app) as client:
            response = client.get("/health")
            assert response.status_code == 200
            assert response.json() == {"status": "ok"}
            assert app.state.restguard.config.api.effective_prefix == "wp-json"
        assert app.state.ready is False


class TestUnhandledEndpointError:
    """An endpoint crash bypasses the response callbacks, like a fatal error on
    the host skips its response filters. The 500 carries no guard headers."""

    @staticmethod
    def _app_with_failing_route():
        app = create_app(Config.defaults())

        async def broken() -> dict:
            raise RuntimeError("endpoint failure")

        app.add_api_route("/wp-json/v2/broken", broken, methods=["GET"])
        return app

    def test_error_propagates_through_guard(self) -> None:
        client = TestClient(self._app_with_failing_route(), raise_server_exceptions=False)
        response = client.get("/wp-json/v2/broken")
        assert response.status_code == 500
        assert "vary" not in response.headers
        assert "pragma" not in response.headers
