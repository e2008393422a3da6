# src/kinetic_authority/main.py
"""Main entry point for the Kinetic Authority service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from kinetic_authority.api.v1 import admin_router, attestation_router, system_router
from kinetic_authority.core.settings import settings
from kinetic_authority.db.session import create_tables
from kinetic_authority.services.attestation import get_attestation_engine
from kinetic_authority.services.sweeper import CleanupSweeper

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Kinetic Authority API",
    description="Challenge attestation with behavioral signals and duress detection",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(system_router, prefix=settings.api_prefix)
app.include_router(attestation_router, prefix=settings.api_prefix)
app.include_router(admin_router, prefix=settings.api_prefix)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 rather than 422."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": "INVALID_FIELDS",
                "message": "Request body is missing or malformed",
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            }
        },
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Hide storage failures behind a generic error and log them for operators."""
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "Internal error"}},
    )


@app.on_event("startup")
async def on_startup() -> None:
    if settings.auto_create_tables:
        create_tables()
    if settings.sweeper_enabled:
        engine = get_attestation_engine()
        sweeper = CleanupSweeper(engine.nonce_store, engine.session_store)
        await sweeper.start()
        app.state.sweeper = sweeper
    else:
        app.state.sweeper = None
    logger.info("%s %s ready", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    sweeper: CleanupSweeper | None = getattr(app.state, "sweeper", None)
    if sweeper:
        await sweeper.stop()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        "kinetic_authority.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
