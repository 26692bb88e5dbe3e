"""Error taxonomy for license operations.

Every error carries the HTTP status it maps to and a human-readable message;
``main.py`` turns them into ``{"error": message}`` responses.
"""
from fastapi import status


class LicenseError(Exception):
    """Base class for license errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "License server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationInputError(LicenseError):
    """A required field is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthorized(LicenseError):
    """Missing or mismatched admin credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFound(LicenseError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class DuplicateKey(LicenseError):
    """Key collision on insert.

    Callers retry with a freshly generated key; once the retry budget is
    spent the error reaches the client as a 409 conflict.
    """

    status_code = status.HTTP_409_CONFLICT
    default_message = "Duplicate license key"


class StoreUnavailable(LicenseError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "License store unavailable"
