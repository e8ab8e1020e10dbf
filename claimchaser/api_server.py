"""
FastAPI API Server.

REST API for the claim chaser call lifecycle: manual dispatch, end-call,
transcript processing, the cron-triggered reconciliation sweep, the voice
toggle, denial reason edits and the provider webhook.

Start with:
    uvicorn claimchaser.api_server:app --reload --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv
load_dotenv(".env.local")

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimchaser.api.calls import router as calls_router
from claimchaser.api.claims import router as claims_router
from claimchaser.api.cron import router as cron_router
from claimchaser.api.errors import (
    claimchaser_error_handler,
    rate_limit_error_handler,
    voice_provider_error_handler,
)
from claimchaser.api.middleware import RequestIdMiddleware
from claimchaser.api.voice_settings import router as voice_settings_router
from claimchaser.api.webhooks import router as webhooks_router
from claimchaser.config import get_settings
from claimchaser.db import get_db
from claimchaser.exceptions import ClaimChaserError, RateLimitError, VoiceProviderError
from claimchaser.logging_config import get_logger, setup_logging
from claimchaser.services.call_orchestrator import CallOrchestrator
from claimchaser.services.dispatch_lock import create_dispatch_lock

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    logger.info("api_server_starting", environment=settings.environment.value)

    lock = create_dispatch_lock(settings.redis_url, settings.dispatch_lock_ttl_seconds)
    async with httpx.AsyncClient(timeout=settings.voice_http_timeout_seconds) as client:
        app.state.orchestrator = CallOrchestrator.from_settings(settings, get_db(), client, lock)
        try:
            yield
        finally:
            await lock.close()
            logger.info("api_server_stopping")


app = FastAPI(
    title="Claim Chaser API",
    description="Automated insurance denial follow-up calls",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (outermost first)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(VoiceProviderError, voice_provider_error_handler)
app.add_exception_handler(RateLimitError, rate_limit_error_handler)
app.add_exception_handler(ClaimChaserError, claimchaser_error_handler)

# Routers
app.include_router(calls_router)
app.include_router(cron_router)
app.include_router(claims_router)
app.include_router(voice_settings_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["System"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "claimchaser"}


@app.get("/", tags=["System"])
async def root() -> dict[str, str]:
    """API root."""
    return {
        "service": "Claim Chaser",
        "version": "0.1.0",
        "docs": "/docs",
    }
