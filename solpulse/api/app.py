"""FastAPI application factory with lifespan, CORS, error envelopes and routers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from solpulse import __version__
from solpulse.config import get_settings
from solpulse.services import Services, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_settings())
    logger.info("Solana Narrative Pulse API v%s starting", __version__)
    yield
    await app.state.services.aclose()
    logger.info("Solana Narrative Pulse API shutting down")


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "invalid request")
    return JSONResponse(
        {"success": False, "error": f"Invalid request body: {where} {message}".strip()},
        status_code=400,
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[api] %s %s failed", request.method, request.url.path)
    return JSONResponse({"success": False, "error": str(exc) or type(exc).__name__}, status_code=500)


def create_app(services: Services | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    app = FastAPI(
        title="Solana Narrative Pulse",
        description="Emerging Solana ecosystem narratives and build ideas from live signals",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    from solpulse.api.routes import history, ideas, narratives, signals, system
    app.include_router(narratives.router, prefix="/api")
    app.include_router(signals.router, prefix="/api")
    app.include_router(history.router, prefix="/api")
    app.include_router(ideas.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app
