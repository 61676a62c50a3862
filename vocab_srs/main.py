"""FastAPI application factory."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from vocab_srs import __version__
from vocab_srs.api.v1 import api_router
from vocab_srs.config import settings
from vocab_srs.db.session import check_db_connection, close_db, init_db
from vocab_srs.utils.exceptions import SRSException, error_payload, log_error
from vocab_srs.utils.logger import setup_logging


tags_metadata: List[dict[str, str]] = [
    {"name": "srs", "description": "Review scheduling, due queues and learner progress."},
    {"name": "health", "description": "Liveness and database connectivity."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    init_db()
    logger.info("Application started", project=settings.PROJECT_NAME, version=__version__)
    try:
        yield
    finally:
        close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Spaced repetition scheduling for vocabulary learners.",
        version=__version__,
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=jsonable_encoder({"detail": exc.errors(), "message": "Validation failed"}),
        )

    @app.exception_handler(SRSException)
    async def srs_exception_handler(request: Request, exc: SRSException) -> JSONResponse:
        log_error(exc)
        return JSONResponse(status_code=exc.status_code, content=error_payload(exc))

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        database = "ok" if check_db_connection() else "unavailable"
        return {"status": "ok", "database": database}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
