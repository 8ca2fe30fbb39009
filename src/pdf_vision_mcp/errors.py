"""Error taxonomy and result envelope helpers.

Errors returned to agents must be stable and must never include credentials.
Each error kind carries a ``code`` that callers can match on, and a message
that depends only on configuration and input (never on elapsed time).
"""

from __future__ import annotations

from typing import Any


class VisionError(Exception):
    """Base class for every error the vision pipeline reports to callers."""

    code = "Internal"

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class InvalidArgument(VisionError):
    """Malformed request; raised before any I/O."""

    code = "InvalidArgument"


class ConfigError(VisionError):
    """Host configuration is missing or invalid."""

    code = "Config"


class MissingCredential(VisionError):
    """Provider credential could not be resolved; no network call was made."""

    code = "MissingCredential"


class SourceResolutionError(VisionError):
    """The requested page or image could not be materialized from the source."""

    code = "SourceResolutionError"


class ProviderTimeoutError(VisionError):
    """The provider call exceeded its configured duration and was aborted."""

    code = "Timeout"

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(
            f"OCR request timed out after {timeout_ms}ms.",
            hint="Increase PDF_VISION_OCR_TIMEOUT_MS or retry later",
        )
        self.timeout_ms = timeout_ms


class ProviderTransportError(VisionError):
    """Network-level failure not caused by the configured timeout."""

    code = "ProviderTransportError"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ProviderResponseError(VisionError):
    """Provider was reachable but returned an unusable status or body."""

    code = "ProviderResponseError"

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def to_error_result(*, code: str, message: str, hint: str | None = None) -> dict[str, Any]:
    """Build a standard tool error envelope."""
    out: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if hint:
        out["hint"] = hint
    return out


def vision_error_to_result(err: VisionError) -> dict[str, Any]:
    """Convert a VisionError into the standard tool envelope."""
    out = to_error_result(code=err.code, message=err.message, hint=err.hint)
    status_code = getattr(err, "status_code", None)
    if status_code is not None:
        out["status_code"] = status_code
    return out


def internal_error(message: str = "Internal error") -> dict[str, Any]:
    """Error for unexpected failures."""
    return to_error_result(code="Internal", message=message)
