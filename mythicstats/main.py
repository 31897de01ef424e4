import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mythicstats.api import (
    health_router,
    inventory_router,
    quota_router,
    sets_router,
    tracking_router,
)
from mythicstats.config import settings
from mythicstats.db.database import dispose_db, init_db
from mythicstats.models.failure import KnownError, create_known_failure, create_unknown_failure
from mythicstats.services.sync_client import create_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables and own the pricing API client for the app's lifetime."""
    await init_db()
    async with create_http_client(settings) as http:
        app.state.http = http
        yield
    await dispose_db()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("mythicstats"),
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(quota_router)
app.include_router(tracking_router)
app.include_router(sets_router)
app.include_router(inventory_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    logger.info("KNOWN_FAILURE", extra={"kind": exc.kind.value, "failure_message": exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content=create_known_failure(exc).model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("UNKNOWN_FAILURE", extra={"error_type": type(exc).__name__})
    return JSONResponse(
        status_code=500,
        content=create_unknown_failure(exc).model_dump(mode="json"),
    )
