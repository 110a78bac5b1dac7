"""Main FastAPI application for the upload service."""

import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from upload_service.api.middleware import LoggingMiddleware, SecurityHeadersMiddleware
from upload_service.api.routes_uploads import router as uploads_router
from upload_service.core.config import Settings, get_settings
from upload_service.core.exceptions import BaseServiceException
from upload_service.core.logging import configure_logging, get_logger
from upload_service.services.object_store import S3Uploader
from upload_service.services.uploads import Uploader


logger = get_logger(__name__)


async def service_exception_handler(request: Request, exc: BaseServiceException) -> PlainTextResponse:
    level = "error" if exc.status_code >= 500 else "warning"
    getattr(logger, level)(
        "upload_failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        error=exc.message,
    )
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def create_app(settings: Optional[Settings] = None, uploader: Optional[Uploader] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "starting upload-service",
            version=settings.app_version,
            env=settings.env,
            region=settings.aws_region,
            bucket=settings.s3_bucket,
        )
        yield
        logger.info("shutting down upload-service")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Upload Service - stream a file to object storage",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url=None,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.uploader = uploader or S3Uploader.from_settings(settings)

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(BaseServiceException, service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Routers
    app.include_router(uploads_router)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(content={"ok": True})

    return app


def run() -> None:
    """Console entry point: refuse to start without a valid configuration."""
    import uvicorn

    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging()
        missing = [".".join(str(p) for p in err["loc"]).upper() for err in exc.errors()]
        logger.error("invalid configuration", fields=missing)
        sys.exit(1)

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
