"""Exception hierarchy shared by every annotation sync component."""

from __future__ import annotations


class AnnotationSyncError(RuntimeError):
    """Base class for failures surfaced to callers of this package."""


class ValidationError(AnnotationSyncError, ValueError):
    """Raised for malformed ids, descriptions, positions or configuration."""


class AuthError(AnnotationSyncError):
    """Raised when the backend keeps rejecting our credentials."""

    def __init__(self, message: str, *, status: int, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class RemoteError(AnnotationSyncError):
    """Raised for HTTP failures other than auth and gateway timeouts."""

    def __init__(self, message: str, *, status: int = 0, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class TransientServerError(RemoteError):
    """Raised once the gateway-timeout retry budget is exhausted."""


class ConflictError(AnnotationSyncError):
    """Raised when a non-overwriting write targets an id already cached."""

    def __init__(self, message: str, *, annotation_id: str) -> None:
        super().__init__(message)
        self.annotation_id = annotation_id


class OwnershipError(AnnotationSyncError):
    """Raised when the session user may not change an annotation."""

    def __init__(self, message: str, *, owner: str | None = None) -> None:
        super().__init__(message)
        self.owner = owner


class EncodeError(AnnotationSyncError):
    """Raised when an annotation cannot be converted to a wire entry."""


class DecodeError(AnnotationSyncError):
    """Raised when a wire entry cannot be converted to an annotation."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


__all__ = [
    "AnnotationSyncError",
    "AuthError",
    "ConflictError",
    "DecodeError",
    "EncodeError",
    "OwnershipError",
    "RemoteError",
    "TransientServerError",
    "ValidationError",
]
