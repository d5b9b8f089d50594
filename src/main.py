"""FastAPI application entry point.

Run with: uvicorn src.main:app --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from src.us_common.database import engine
from src.us_common.errors import AppError, InternalError
from src.us_common.middleware.request_log import RequestLogMiddleware
from src.us_common.response import error_response
from src.us_users.api.router import router as users_router

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    """Configure root logging; unknown level names fall back to INFO."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        logging.basicConfig(level=logging.INFO)
        logger.warning("Specified invalid log level %r, using INFO", level_name)
        return
    logging.basicConfig(level=level)
    logger.info("Log level set to %s", logging.getLevelName(level))


configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify the DB connection. Shutdown: dispose the pool."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Successfully connected to database")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Unhandled database error: %s", exc)
    internal = InternalError()
    resp = error_response(internal.code, internal.message)
    return JSONResponse(
        status_code=internal.http_status,
        content=resp.model_dump(),
    )


app.include_router(users_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
