"""
Exception taxonomy for call orchestration.

Each class maps to one failure category; the API layer turns them into
HTTP responses and the reconciliation sweep counts them per candidate.
"""

from __future__ import annotations


class ClaimChaserError(Exception):
    """Base class for all service errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ── Transient remote ─────────────────────────────────────────────


class VoiceProviderError(ClaimChaserError):
    """The voice provider answered with a non-success status."""

    status_code = 502

    def __init__(self, message: str, provider_status: int | None = None):
        super().__init__(message)
        self.provider_status = provider_status


class RateLimitError(ClaimChaserError):
    status_code = 429

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Rate limit exceeded for {service}")


# ── Data not found ───────────────────────────────────────────────


class NotFoundError(ClaimChaserError):
    status_code = 404


class CallNotFoundError(NotFoundError):
    pass


class ClaimNotFoundError(NotFoundError):
    pass


class DenialReasonNotFoundError(NotFoundError):
    pass


# ── Extraction not ready ─────────────────────────────────────────


class TranscriptNotReadyError(ClaimChaserError):
    status_code = 409

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(
            "No transcript found for this conversation - transcript may not be available yet"
        )


# ── Dispatch ─────────────────────────────────────────────────────


class DispatchError(ClaimChaserError):
    """A manual dispatch could not start a call."""


class ActiveCallExistsError(DispatchError):
    status_code = 409

    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__("There is already an active call in progress. Please wait for it to complete.")


class NoClaimsAvailableError(DispatchError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("No claims found that need calling. All claims have been called.")


class ClaimNotDialableError(DispatchError):
    """Claim has no provider or the provider has no claims phone number."""

    status_code = 400


class DispatchLockedError(DispatchError):
    status_code = 409

    def __init__(self, message: str = "Another dispatch is already in progress") -> None:
        super().__init__(message)


class DispatchLockLostError(DispatchLockedError):
    """The lock expired or changed hands before the call was placed."""

    def __init__(self) -> None:
        super().__init__("Dispatch lock was lost before the call was placed")


# ── Store / input ────────────────────────────────────────────────


class StoreError(ClaimChaserError):
    """A write against the claim/call store failed."""


class ValidationError(ClaimChaserError):
    status_code = 400
