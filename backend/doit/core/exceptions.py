"""
core/exceptions.py

Description:
Defines a standard error response format for the API and the error
taxonomy shared by all services:
- Input validation failures, raised before any backend call
- Backend rejections, translated to a user-readable message when the
  backend error code is known
- Image pipeline failures
"""

from typing import Any

from fastapi import HTTPException, status


class APIError(HTTPException):
    """Custom exception with standardized error response."""

    def __init__(self, status_code: int, message: str, headers: dict[str, Any] | None = None):
        super().__init__(status_code=status_code, detail={"error": message}, headers=headers)
        self.message = message

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------
# Input Validation Failures
# ---------------------------------------------------
class ValidationFailure(APIError):
    """Missing identifiers or malformed input detected before any network call."""

    def __init__(self, message: str):
        super().__init__(status.HTTP_400_BAD_REQUEST, message)


class InvalidUploadError(APIError):
    """Rejected upload: wrong file type, empty or oversized file."""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code, message)


class ImageTooLargeError(APIError):
    """Even the emergency compression pass could not fit the document budget."""

    def __init__(self, message: str):
        super().__init__(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, message)


class NotFoundError(APIError):
    def __init__(self, message: str):
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class PermissionDeniedError(APIError):
    def __init__(self, message: str = "You are not allowed to perform this action."):
        super().__init__(status.HTTP_403_FORBIDDEN, message)


class StorageUnavailableError(APIError):
    def __init__(self, message: str = "Object storage is not configured or unavailable."):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, message)


# ---------------------------------------------------
# Backend Rejections
# ---------------------------------------------------
KNOWN_BACKEND_ERRORS: dict[str, tuple[int, str]] = {
    "permission-denied": (status.HTTP_403_FORBIDDEN, "Access denied. Please sign in again."),
    "unauthenticated": (status.HTTP_401_UNAUTHORIZED, "Please sign in to continue."),
    "not-found": (status.HTTP_404_NOT_FOUND, "The requested record does not exist."),
    "unavailable": (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Network error. Please check your connection and try again.",
    ),
    "resource-exhausted": (
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Quota exceeded. Please try again later.",
    ),
    "invalid-argument": (
        status.HTTP_400_BAD_REQUEST,
        "The data could not be saved because it is invalid or too large.",
    ),
    "storage/unauthorized": (status.HTTP_403_FORBIDDEN, "Access denied. Please sign in again."),
    "storage/bucket-not-found": (status.HTTP_404_NOT_FOUND, "Upload failed: the storage bucket does not exist."),
    "storage/retry-limit-exceeded": (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Network error. Please check your internet connection.",
    ),
    "storage/invalid-checksum": (
        status.HTTP_400_BAD_REQUEST,
        "File is corrupted. Please try a different file.",
    ),
    "storage/server-file-wrong-size": (
        status.HTTP_502_BAD_GATEWAY,
        "Server error during upload. Please try again later.",
    ),
}


def translate_backend_error(code: str | None, detail: str | None = None) -> tuple[int, str]:
    """Maps a backend error code to an HTTP status and a user-readable message."""
    if code and code in KNOWN_BACKEND_ERRORS:
        return KNOWN_BACKEND_ERRORS[code]
    return status.HTTP_502_BAD_GATEWAY, f"Backend error: {detail or 'Unknown error'}"


class BackendError(APIError):
    """A write or read rejected by the document store or object storage."""

    def __init__(self, code: str | None, detail: str | None = None):
        status_code, message = translate_backend_error(code, detail)
        super().__init__(status_code, message)
        self.code = code
        self.backend_detail = detail
