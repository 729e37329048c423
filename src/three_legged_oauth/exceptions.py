"""
Exception classes for the three-legged OAuth client.

This module defines the exception hierarchy for configuration, signing,
token exchange, storage and transport errors.
"""

from typing import Optional


class ThreeLeggedOAuthError(Exception):
    """Base exception for all three-legged OAuth errors."""

    pass


class ConfigurationError(ThreeLeggedOAuthError):
    """OAuth configuration error (missing, invalid, or changed after first use)."""

    pass


class InvalidRequestError(ThreeLeggedOAuthError):
    """Malformed signing input (empty HTTP method or URL)."""

    pass


class TokenExchangeError(ThreeLeggedOAuthError):
    """Request-token or access-token exchange failed."""

    pass


class ConcurrentTransitionError(TokenExchangeError):
    """Another request completed the handshake first; the pending token is spent."""

    pass


class InvalidStatusError(ThreeLeggedOAuthError):
    """Status value is not one of the defined authorization statuses."""

    pass


class TokenStorageError(ThreeLeggedOAuthError):
    """Token storage operation failed."""

    pass


class TransportError(ThreeLeggedOAuthError):
    """
    HTTP transport failure.

    Raised for network errors and for non-2xx responses. For the latter
    the status code and body are kept so callers can inspect what the
    server said.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
