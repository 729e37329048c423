"""
Data types for the three-legged OAuth client.

Credentials and tokens are plain immutable key/secret pairs. Requests and
responses are described by small dataclasses so that signing, transport
and storage can be exercised independently of each other.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional


class AuthorizationStatus(IntEnum):
    """
    Progress through the three-legged handshake.

    The integer values are the persisted representation (0-3).
    """

    NOT_STARTED = 0
    PENDING_AUTHORIZATION = 1
    AUTHORIZED = 2
    AUTHORIZATION_FAILED = 3


class SignaturePlacement(str, Enum):
    """Where the oauth_* protocol parameters are sent."""

    HEADER = "header"  # Authorization: OAuth ...
    QUERY = "query"  # appended to the request URI
    FORM = "form"  # form-encoded request body


@dataclass(frozen=True)
class Credential:
    """
    Consumer credentials identifying the client application.

    Attributes:
        consumer_key: Consumer key issued by the service provider
        consumer_secret: Consumer secret issued by the service provider
    """

    consumer_key: str
    consumer_secret: str

    def __repr__(self) -> str:
        return f"Credential(consumer_key={self.consumer_key!r}, consumer_secret='***')"


@dataclass(frozen=True)
class Token:
    """
    Request token or access token.

    Attributes:
        key: Value sent as oauth_token
        secret: Token secret, used only in the signing key
    """

    key: str
    secret: str

    def __repr__(self) -> str:
        return f"Token(key={self.key!r}, secret='***')"


@dataclass
class PreparedRequest:
    """
    Fully specified outgoing request, ready for a Transport.

    Attributes:
        method: Upper-case HTTP method
        url: Final URL (including any query-placed oauth_* parameters)
        headers: Headers to send
        body: Form-encoded body, or None
        oauth_params: Protocol parameters including oauth_signature
        base_string: Signature base string (kept for debugging)
    """

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    oauth_params: Dict[str, str] = field(default_factory=dict)
    base_string: str = ""


@dataclass
class TransportResponse:
    """Status code and raw body returned by a Transport."""

    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class RedirectTarget:
    """URL the caller should redirect the user agent to."""

    url: str
