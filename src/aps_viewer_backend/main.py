from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .aps_service import ApsService
from .clients import AuthenticationClient, ModelDerivativeClient, OssClient
from .configuration import ConfigurationError, Settings, load_settings
from .errors import ApsError
from .middleware import RequestTimedOut, TimeoutMiddleware
from .routes import auth_router, models_router
from .utils import ensure_directory

logger = logging.getLogger(__name__)


def build_service(settings: Settings, http: httpx.AsyncClient) -> ApsService:
    return ApsService(
        settings,
        AuthenticationClient(http),
        OssClient(http),
        ModelDerivativeClient(http),
    )


async def aps_error_handler(request: Request, exc: ApsError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "source": "aps"})


async def network_error_handler(request: Request, exc: httpx.RequestError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} could not reach APS: {exc!r}")
    return JSONResponse(status_code=502, content={"detail": str(exc) or type(exc).__name__, "source": "network"})


async def timed_out_handler(request: Request, exc: RequestTimedOut) -> JSONResponse:
    # The timeout middleware has already answered; this body is never sent.
    return JSONResponse(status_code=503, content={"detail": "Response timeout"})


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ApsService] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Assemble the FastAPI application.

    Args:
        settings: Process settings; loaded from the environment when omitted
        service: Prebuilt facade, mainly for tests; built from ``http_client``
            otherwise
        http_client: Shared client for all APS calls. When omitted one is
            created and closed with the application lifespan.
    """
    if settings is None:
        settings = load_settings()

    owns_client = http_client is None and service is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if owns_client:
            client = httpx.AsyncClient(base_url=settings.base_url, timeout=httpx.Timeout(60.0, read=settings.request_timeout))
            app.state.aps_service = build_service(settings, client)
        try:
            yield
        finally:
            if client is not None:
                await client.aclose()

    app = FastAPI(title="APS Viewer API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    if service is not None:
        app.state.aps_service = service
    elif http_client is not None:
        app.state.aps_service = build_service(settings, http_client)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TimeoutMiddleware, timeout=settings.request_timeout)

    app.add_exception_handler(ApsError, aps_error_handler)
    app.add_exception_handler(httpx.RequestError, network_error_handler)
    app.add_exception_handler(RequestTimedOut, timed_out_handler)

    @app.get("/healthz")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(auth_router)
    app.include_router(models_router)

    static_dir = ensure_directory(Path(settings.static_dir))
    app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    return app


def run() -> None:
    logging.basicConfig(level=logging.INFO)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.warning(str(exc))
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level.upper())
    app = create_app(settings)
    logger.info(f"Server listening on port {settings.port}...")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
