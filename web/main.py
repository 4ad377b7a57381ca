"""FastAPI application for the consultation backend"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consult.auth.credentials import CredentialService, resolve_secret_key
from consult.storage.config_store import ConfigProvider, FileConfigProvider
from consult.storage.document_store import DocumentStore, open_document_store
from consult.storage.resolver import StorageResolver
from consult.utils.config import Settings, load_settings
from consult.utils.exceptions import (
    ConfigError,
    ConfigErrorKind,
    ConsultError,
    StoreError,
    UploadError,
    UploadErrorKind,
)
from consult.utils.logger import get_logger
from consult.utils.process_guard import install_process_guard
from .api import router as api_router
from .auth_deps import AppServices
from .auth_routes import router as auth_router
from .consultation_routes import router as consultation_router

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong!"


def _safe_message(exc: ConsultError) -> str:
    """Client-facing message; server-side failures never echo internals"""
    if isinstance(exc, UploadError) and exc.kind == UploadErrorKind.BACKEND_UNAVAILABLE:
        return "Video upload failed"
    if isinstance(exc, ConfigError) and exc.kind == ConfigErrorKind.WRITE_FAILED:
        return "Error saving storage path"
    if isinstance(exc, StoreError):
        return "Database error"
    if exc.status_code >= 500:
        return GENERIC_ERROR_MESSAGE
    return exc.message


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    include_detail = not settings.app.is_production

    @app.exception_handler(ConsultError)
    async def consult_error_handler(request: Request, exc: ConsultError) -> JSONResponse:
        content = {"success": False, "detail": _safe_message(exc)}
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                path=request.url.path,
                error_type=type(exc).__name__,
                kind=getattr(exc.kind, "value", None),
                error=exc.message,
            )
            if include_detail:
                content["error"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled request error", path=request.url.path, error=str(exc))
        content = {"success": False, "detail": GENERIC_ERROR_MESSAGE}
        if include_detail:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    config_provider: Optional[ConfigProvider] = None,
    resolver: Optional[StorageResolver] = None,
    process_guard: bool = True,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to the ones described by settings; tests pass
    in-memory replacements. Raises StartupError on fatal misconfiguration
    (missing connection string, missing secret in production).
    """
    settings = settings or load_settings()
    secret_key = resolve_secret_key(settings.auth, settings.app)

    store = store or open_document_store(settings.database.url)
    config_provider = config_provider or FileConfigProvider(
        Path(settings.storage.config_file), default_path=settings.storage.default_path
    )
    resolver = resolver or StorageResolver(config_provider, settings.storage, settings.cloudinary)
    credentials = CredentialService(store, settings.auth, secret_key)

    services = AppServices(
        settings=settings,
        store=store,
        credentials=credentials,
        config_provider=config_provider,
        resolver=resolver,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if process_guard:
            install_process_guard(asyncio.get_running_loop())
        await run_in_threadpool(credentials.create_default_admin)
        logger.info(
            "Consult API started",
            environment=settings.app.environment,
            storage_backend=resolver.backend_kind,
        )
        yield
        logger.info("Consult API stopped")

    app = FastAPI(
        title=settings.app.name,
        description="Doctor-patient consultation backend",
        version=settings.app.version,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    _register_exception_handlers(app, settings)

    app.include_router(auth_router)
    app.include_router(api_router)
    app.include_router(consultation_router)

    return app
