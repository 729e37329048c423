"""
OAuth 1.0a three-legged authorization client.

This package obtains a request token, sends the resource owner to the
authorization endpoint, exchanges the approved request token for an
access token, and signs subsequent requests with HMAC-SHA1.

Storage and HTTP are pluggable:
- TokenStore implementations persist token, secret and status
- Transport implementations execute requests

Public API:
    OAuthClientConfig: Configuration management
    OAuthClient: High-level client (handshake + signed requests)
    AuthorizationStateMachine: Handshake state machine
    RequestBuilder: Signed request assembly
    sign: HMAC-SHA1 signature function
    TokenStore, InMemoryTokenStore, SessionTokenStore, JsonFileTokenStore,
    SqlAlchemyTokenStore: Token storage
    Transport, RequestsTransport: HTTP transport

Exceptions:
    ThreeLeggedOAuthError: Base exception
    ConfigurationError: Configuration error
    InvalidRequestError: Malformed signing input
    TokenExchangeError: Token exchange failed
    ConcurrentTransitionError: Concurrent handshake won the commit
    InvalidStatusError: Undefined authorization status
    TokenStorageError: Storage operation failed
    TransportError: HTTP failure
"""

from .client import OAuthClient
from .config import OAuthClientConfig
from .database import OAuthTokenRecord, SqlAlchemyTokenStore, create_session_factory
from .exceptions import (
    ConcurrentTransitionError,
    ConfigurationError,
    InvalidRequestError,
    InvalidStatusError,
    ThreeLeggedOAuthError,
    TokenExchangeError,
    TokenStorageError,
    TransportError,
)
from .models import (
    AuthorizationStatus,
    Credential,
    PreparedRequest,
    RedirectTarget,
    SignaturePlacement,
    Token,
    TransportResponse,
)
from .request_builder import RequestBuilder
from .signer import percent_encode, sign, signature_base_string
from .state_machine import AuthorizationStateMachine
from .token_storage import InMemoryTokenStore, JsonFileTokenStore, SessionTokenStore, TokenStore
from .transport import RequestsTransport, Transport

__all__ = [
    # Configuration
    "OAuthClientConfig",
    # Data types
    "AuthorizationStatus",
    "Credential",
    "PreparedRequest",
    "RedirectTarget",
    "SignaturePlacement",
    "Token",
    "TransportResponse",
    # Signing
    "percent_encode",
    "sign",
    "signature_base_string",
    "RequestBuilder",
    # Token Storage
    "TokenStore",
    "InMemoryTokenStore",
    "SessionTokenStore",
    "JsonFileTokenStore",
    "SqlAlchemyTokenStore",
    "OAuthTokenRecord",
    "create_session_factory",
    # Transport
    "Transport",
    "RequestsTransport",
    # Handshake
    "AuthorizationStateMachine",
    "OAuthClient",
    # Exceptions
    "ThreeLeggedOAuthError",
    "ConfigurationError",
    "InvalidRequestError",
    "TokenExchangeError",
    "ConcurrentTransitionError",
    "InvalidStatusError",
    "TokenStorageError",
    "TransportError",
]
