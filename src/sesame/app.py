"""Application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from sesame.auth.errors import PageRedirect, SesameError
from sesame.auth.federation.fedcm import FedCMCORSMiddleware
from sesame.auth.federation.fedcm import router as fedcm_router
from sesame.auth.federation.router import router as federation_router
from sesame.auth.federation.service import FederationCeremonies
from sesame.auth.pages import router as pages_router
from sesame.auth.passkeys.router import router as passkey_router
from sesame.auth.passkeys.service import CredentialCeremonies
from sesame.auth.router import router as auth_router
from sesame.auth.session_store import SessionMiddleware
from sesame.auth.well_known import router as well_known_router
from sesame.config import Settings
from sesame.db.base import Base
from sesame.db.engine import create_async_engine_from_settings
from sesame.obs.setup import init_observability
from sesame.version import __version__ as SESAME_VERSION

logger = logging.getLogger(__name__)


def _install_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": message}``; never leak a traceback."""

    @app.exception_handler(SesameError)
    async def _sesame_error(request: Request, exc: SesameError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(PageRedirect)
    async def _page_redirect(request: Request, exc: PageRedirect) -> RedirectResponse:
        return RedirectResponse(exc.location, status_code=307)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "Invalid request."
        if errors:
            loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
            message = f"{loc}: {errors[0].get('msg', 'invalid')}" if loc else message
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("store error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error."})

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error."})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application with sessions, ceremonies and routers."""
    if settings is None:
        settings = Settings()

    # --- database (async) ---
    async_engine = create_async_engine_from_settings(settings)

    # Import models so they register with Base.metadata before create_all.
    import sesame.auth.models  # noqa: F401

    async_session_factory = async_sessionmaker(async_engine, expire_on_commit=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield
        await async_engine.dispose()

    app = FastAPI(
        title="sesame",
        description="Password, passkey and federated sign-in demo.",
        version=SESAME_VERSION,
        lifespan=lifespan,
    )

    # Store on app.state for dependency access.
    app.state.settings = settings
    app.state.async_engine = async_engine
    app.state.async_session_factory = async_session_factory
    app.state.passkey_ceremonies = CredentialCeremonies(settings)
    app.state.federation_ceremonies = FederationCeremonies(settings)

    # --- middleware (session innermost, observability outermost) ---
    app.add_middleware(SessionMiddleware, settings=settings)
    app.add_middleware(FedCMCORSMiddleware)
    init_observability(app, settings)

    _install_exception_handlers(app)

    # --- routers ---
    app.include_router(auth_router)
    app.include_router(passkey_router)
    app.include_router(federation_router)
    app.include_router(fedcm_router)
    app.include_router(pages_router)
    app.include_router(well_known_router)

    class HealthResponse(BaseModel):
        status: str = Field(..., description="Health status string.")

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health",
        description="Basic health check for the app.",
    )
    def health() -> HealthResponse:
        return HealthResponse(status="healthy")

    return app
