# src/modledger/main.py
"""Main entry point for the moderation ledger API."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from modledger.api.v1 import (
    cases_router,
    escalation_router,
    notes_router,
    system_router,
    warnings_router,
)
from modledger.api.v1.dependencies import moderation_error_handler
from modledger.core.errors import ModerationError
from modledger.core.settings import settings

# Initialize FastAPI app
app = FastAPI(
    title="Modledger API",
    description="Moderation case ledger with automatic warning escalation",
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

app.add_exception_handler(ModerationError, moderation_error_handler)

# Include API routers
app.include_router(cases_router, prefix="/api/v1")
app.include_router(warnings_router, prefix="/api/v1")
app.include_router(escalation_router, prefix="/api/v1")
app.include_router(notes_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("modledger.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
