"""RestGuard reference host: FastAPI application factory + lifespan.

A minimal content-management host with the guard installed, used for local
testing and as a wiring example:

  - /                          service discovery root
  - /health                    liveness
  - /<prefix>/v2/status        API endpoint reporting the method the router saw

Run locally:
  uvicorn restguard.main:app --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from starlette.exceptions import HTTPException

from restguard.config import Config, load_config
from restguard.constants import OVERRIDE_HEADERS
from restguard.guard.middleware import install_guard
from restguard.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Routers ──────────────────────────────────────────────────────────────────

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root(request: Request) -> dict[str, str]:
    """Root endpoint: service identity / discovery."""
    prefix = request.app.state.config.api.effective_prefix
    return {
        "service": "RestGuard",
        "health": "/health",
        "api": f"/{prefix}/",
    }


@root_router.get("/health")
async def health(request: Request) -> JSONResponse:
    ready = getattr(request.app.state, "ready", False)
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "starting"},
    )


def _build_api_router(prefix: str) -> APIRouter:
    api_router = APIRouter(prefix=f"/{prefix}", tags=["api"])

    @api_router.api_route("/v2/status", methods=["GET", "HEAD", "POST"])
    async def api_status(request: Request) -> dict:
        """Report what the host's router observed for this request."""
        observed = [
            h.name for h in OVERRIDE_HEADERS if h.name in request.headers
        ]
        return {"method": request.method, "override_headers": observed}

    return api_router


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("RestGuard host starting up...")
    app.state.ready = True
    logger.info("RestGuard host ready", api_prefix=app.state.config.api.effective_prefix)

    yield

    app.state.ready = False
    logger.info("RestGuard host shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create the reference host with the method override guard installed.

    Call directly in tests to get an isolated app instance:
        app = create_app(Config.defaults())
    """
    config = config or load_config()

    application = FastAPI(
        title="RestGuard reference host",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )
    application.state.ready = False
    application.state.config = config

    application.include_router(root_router)
    application.include_router(_build_api_router(config.api.effective_prefix))

    # Registered last so it is outermost.
    install_guard(application, config)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()


# ─── Dev Entrypoint ───────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    host = os.getenv("RESTGUARD_HOST", "127.0.0.1")
    port = int(os.getenv("RESTGUARD_PORT", "8000"))

    logger.info("Starting RestGuard host (dev mode)", host=host, port=port)

    uvicorn.run(
        "restguard.main:app",
        host=host,
        port=port,
        reload=DEBUG,
        log_level=LOG_LEVEL.lower(),
    )
