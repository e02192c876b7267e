from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes.projects import router as projects_router
from api.routes.sources import router as sources_router
from writing_assistant.sources import (
    InvalidTransition,
    InvalidUpload,
    NotFound,
    PermissionDenied,
    SourceMaterialService,
    SourcesConfig,
    build_service,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    NotFound: 404,
    PermissionDenied: 403,
    InvalidUpload: 400,
    InvalidTransition: 409,
}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app(config: Optional[SourcesConfig] = None, service: Optional[SourceMaterialService] = None) -> FastAPI:
    config = config or SourcesConfig.from_env()
    setup_logging(config.log_level)
    engine = None
    if service is None:
        components = build_service(config)
        service, engine = components.service, components.engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.service.close()
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="Writing Assistant Sources API", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_type, status_code in _ERROR_STATUS.items():
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(projects_router)
    app.include_router(sources_router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok"}

    return app


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler
