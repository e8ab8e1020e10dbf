from fastapi import Request
from fastapi.responses import JSONResponse

from claimchaser.exceptions import ClaimChaserError, RateLimitError, VoiceProviderError
from claimchaser.logging_config import get_logger

logger = get_logger(__name__)


async def voice_provider_error_handler(_request: Request, exc: VoiceProviderError) -> JSONResponse:
    logger.error("voice_provider_error", error=exc.message, provider_status=exc.provider_status)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": f"ElevenLabs error: {exc.message}"},
    )


async def rate_limit_error_handler(_request: Request, exc: RateLimitError) -> JSONResponse:
    logger.warning("rate_limited", service=exc.service)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": f"Rate limit exceeded for {exc.service}"},
    )


async def claimchaser_error_handler(_request: Request, exc: ClaimChaserError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", error=exc.message, error_type=type(exc).__name__)
    else:
        logger.info("request_rejected", error=exc.message, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
