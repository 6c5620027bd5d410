"""Exceptions for the Toon API Client."""
from typing import Any, Dict, Optional


class ToonError(Exception):
    """Base class for all Toon errors."""


class ToonMissingArgumentError(ToonError, ValueError):
    """A required argument was missing or empty. Never sent to the API."""


class ToonAbortedError(ToonError):
    """A queued request was dropped before it was started."""


class ToonConnectionError(ToonError):
    """Network connection issues (DNS, Timeout, etc)."""


class ToonApiError(ToonError):
    """The API answered with an error status."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        error_body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.error_body = error_body or {}


class ToonAuthError(ToonApiError):
    """401 Unauthorized, or the tokens could not be fetched or refreshed.

    Reaching the caller means the account needs reauthorization.
    """


class ToonTokenError(ToonAuthError):
    """The token endpoint rejected the request or no tokens are available.

    Never recovered by the connector, since recovery itself needs the tokens.
    """


class ToonForbiddenError(ToonApiError):
    """403 Forbidden."""


class ToonNotFoundError(ToonApiError):
    """404 Resource not found."""


class ToonRateLimitError(ToonApiError):
    """429 Rate Limit Exceeded."""


class ToonValidationError(ToonApiError):
    """400 Bad Request or 422 Validation Error."""


class ToonServerInternalError(ToonApiError):
    """500/502 Internal Server Error."""


class ToonDeviceOfflineError(ToonServerInternalError):
    """500 with the communicationError signature: the thermostat is unreachable."""
