# src/murmur/main.py
"""Main entry point for the Murmur application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from murmur.api.v1 import (
    conversations_router,
    messages_router,
    realtime_router,
    users_router,
)
from murmur.core.errors import MurmurError
from murmur.core.settings import settings
from murmur.db.session import create_tables
from murmur.services.presence import PresenceRegistry
from murmur.services.realtime import ConnectionHub

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Real-time messaging core with end-to-end encrypted payloads",
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

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(conversations_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.exception_handler(MurmurError)
async def murmur_error_handler(request: Request, exc: MurmurError) -> JSONResponse:
    """Render domain errors with the uniform failure envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as 400 with the first problem found."""
    errors = exc.errors()
    message = "Invalid input"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', message)}" if location else first.get("msg", message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message},
    )


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    registry = PresenceRegistry()
    app.state.presence = registry
    app.state.hub = ConnectionHub(registry)
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    registry: PresenceRegistry | None = getattr(app.state, "presence", None)
    if registry:
        registry.clear()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("murmur.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
