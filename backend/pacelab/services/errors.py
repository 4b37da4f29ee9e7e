from __future__ import annotations

from typing import Any

INVALID_GRANT_MARKERS: tuple[str, ...] = ("invalid_grant", "refresh_token")


class PublishingError(Exception):
    pass


class ValidationError(PublishingError):
    pass


class UpstreamQueryFailed(PublishingError):
    pass


class CredentialConfigurationError(PublishingError):
    pass


class LifecycleOperationFailed(PublishingError):
    def __init__(self, message: str, *, cause: BaseException, invalid_grant: bool) -> None:
        super().__init__(message)
        self.cause = cause
        self.invalid_grant = invalid_grant


class UploadHttpError(PublishingError):
    """Non-2xx answer from the upload endpoint; keeps the raw body for diagnostics."""

    def __init__(self, message: str, *, status_code: int, payload: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        base = super().__str__()
        if not self.payload:
            return base
        return f"{base}: {self.payload}"


class UploadStreamAborted(PublishingError):
    pass


class UploadStartFailed(PublishingError):
    pass


class CodeExchangeFailed(PublishingError):
    def __init__(self, message: str, *, payload: str = "") -> None:
        super().__init__(message)
        self.payload = payload


def is_invalid_grant(error: object) -> bool:
    """True when a failure means the stored refresh credential is unusable.

    Matches `invalid_grant` or `refresh_token` anywhere in the stringified
    error or in an upstream payload attached to it, ignoring case.
    """
    normalized = describe_error(error).lower()
    return any(marker in normalized for marker in INVALID_GRANT_MARKERS)


def describe_error(error: object) -> str:
    parts: list[str] = [_stringify(error)]
    for attribute in ("payload", "content", "error_details"):
        attached = getattr(error, attribute, None)
        if attached is not None:
            parts.append(_stringify(attached))
    args = getattr(error, "args", None)
    if isinstance(args, tuple):
        parts.extend(_stringify(arg) for arg in args[1:] if arg is not None)
    return " ".join(part for part in parts if part)


def summarize_error(error: BaseException, *, max_length: int = 400) -> str:
    raw = str(error).strip()
    if not raw:
        raw = repr(error)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _stringify(value: Any) -> str:
    if isinstance(value, bytes | bytearray):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    try:
        return str(value)
    except Exception:
        return repr(value)
