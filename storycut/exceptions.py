"""Custom exceptions for the storycut backend.

Validation and decode errors are recovered locally (the item is dropped or
treated as silent). Everything else aborts the current export attempt and is
surfaced to the caller as a single descriptive message.
"""

from enum import Enum
from typing import Any


class StorycutError(Exception):
    """Base exception for all storycut application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error responses."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# Locally recovered errors
# =============================================================================


class TrackItemValidationError(StorycutError):
    """A track item is malformed. Dropped from the render plan, never fatal."""

    code = "INVALID_TRACK_ITEM"
    status_code = 422
    message = "Invalid track item"

    def __init__(self, reason: str, item_id: str | None = None):
        self.item_id = item_id
        self.reason = reason
        message = f"Track item {item_id}: {reason}" if item_id else f"Track item: {reason}"
        super().__init__(message)


class DecodeFailure(str, Enum):
    """Categories of audio analysis failure."""

    UNSUPPORTED_CODEC = "unsupported_codec"
    NETWORK_BLOCKED = "network_blocked"
    DECODE_TIMEOUT = "decode_timeout"
    UNKNOWN = "unknown"


class AudioDecodeError(StorycutError):
    """Audio could not be decoded for visualization. Degrades to silence."""

    code = "AUDIO_DECODE_FAILED"
    status_code = 422
    message = "Audio decode failed"

    def __init__(self, src: str, category: DecodeFailure, detail: str = ""):
        self.src = src
        self.category = category
        self.detail = detail
        message = f"Cannot decode audio from {src} ({category.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# =============================================================================
# Export-fatal errors
# =============================================================================


class InfrastructureError(StorycutError):
    """A bootstrap step (bucket, function, site) failed."""

    code = "INFRASTRUCTURE_ERROR"
    status_code = 502
    message = "Failed to set up render infrastructure"
    # Every bootstrap step is get-or-create, so the whole bootstrap can be re-run
    retryable = True

    def __init__(self, step: str, detail: str = ""):
        self.step = step
        message = f"Infrastructure step '{step}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SubmissionError(StorycutError):
    """The render payload was malformed or rejected by the provider."""

    code = "SUBMISSION_ERROR"
    status_code = 400
    message = "Render submission failed"


class RemoteRenderFailure(StorycutError):
    """The remote render reached the Failed terminal state."""

    code = "RENDER_FAILED"
    status_code = 502
    message = "Render failed"

    def __init__(self, errors: list[str] | None = None, render_id: str | None = None):
        self.errors = errors or []
        self.render_id = render_id
        if self.errors:
            message = "Render failed:\n" + "\n".join(self.errors)
        else:
            message = "Render failed on the compute provider"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        data["render_id"] = self.render_id
        return data


class TransportError(StorycutError):
    """A network call to an external collaborator failed."""

    code = "TRANSPORT_ERROR"
    status_code = 502
    message = "Network call failed"

    def __init__(self, message: str | None = None, *, timed_out: bool = False):
        self.timed_out = timed_out
        super().__init__(message)


class StorageError(StorycutError):
    """Media upload or lookup failed."""

    code = "STORAGE_ERROR"
    status_code = 500
    message = "Storage operation failed"


class TranscriptionError(StorycutError):
    """The transcription service is unavailable or rejected the media."""

    code = "TRANSCRIPTION_ERROR"
    status_code = 502
    message = "Transcription failed"
