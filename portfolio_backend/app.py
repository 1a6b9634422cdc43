"""
FastAPI application entry point for the portfolio backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from portfolio_backend.config import Settings, get_settings
from portfolio_backend.dependencies import close_db_client, init_db_client
from portfolio_backend.routes import router

logger = logging.getLogger(__name__)

_ROUTING_DETAILS = ("Not Found", "Method Not Allowed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_in_threadpool(init_db_client)
    yield
    close_db_client()


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405) and exc.detail in _ROUTING_DETAILS:
        return JSONResponse(status_code=404, content={"error": "Endpoint not found"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = "Invalid request"
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        msg = first.get("msg", message)
        message = f"{loc}: {msg}" if loc else msg
    return JSONResponse(status_code=400, content={"error": message})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="Portfolio Backend",
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    @app.middleware("http")
    async def catch_unhandled_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "Unhandled error: %s %s", request.method, request.url.path
            )
            return JSONResponse(
                status_code=500,
                content={"error": str(exc) or "Internal Server Error"},
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
