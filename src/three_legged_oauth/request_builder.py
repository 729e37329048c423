"""
Signed request assembly.

The RequestBuilder stamps each request with a fresh nonce and timestamp,
signs it with the Signer, and places the protocol parameters in the
Authorization header, the URI query, or a form-encoded body. It returns a
PreparedRequest and never executes anything.
"""

import logging
import secrets
import time
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from .exceptions import InvalidRequestError
from .models import Credential, PreparedRequest, SignaturePlacement, Token
from .signer import (
    SIGNATURE_METHOD,
    Parameters,
    hmac_sha1,
    percent_encode,
    signature_base_string,
    signing_key,
    to_pairs,
)

logger = logging.getLogger(__name__)

OAUTH_VERSION = "1.0"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

BODY_METHODS = ("POST", "PUT", "PATCH")


def generate_nonce() -> str:
    """Return 16 random bytes from the OS CSPRNG as 32 hex characters."""
    return secrets.token_hex(16)


def generate_timestamp() -> str:
    """Return the current Unix time in whole seconds."""
    return str(int(time.time()))


def encode_pairs(pairs: List[Tuple[str, str]]) -> str:
    """Form-encode pairs using OAuth percent-encoding."""
    return "&".join(f"{percent_encode(name)}={percent_encode(value)}" for name, value in pairs)


def add_params_to_url(url: str, pairs: List[Tuple[str, str]]) -> str:
    """Append parameters to the query component of a URL."""
    if not pairs:
        return url
    parts = urlsplit(url)
    extra = encode_pairs(pairs)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def authorization_header(oauth_params: Dict[str, str], realm: Optional[str] = None) -> str:
    """
    Render an Authorization header value.

    Example:
        OAuth realm="Photos", oauth_consumer_key="dpf43f3p2l4k3l03", ...
    """
    parts = []
    if realm is not None:
        parts.append(f'realm="{realm}"')
    parts.extend(f'{percent_encode(name)}="{percent_encode(value)}"' for name, value in oauth_params.items())
    return "OAuth " + ", ".join(parts)


class RequestBuilder:
    """
    Builds signed requests for a single consumer.

    Nonce and timestamp sources can be replaced for deterministic tests.
    secrets.token_hex is safe to call from several threads at once.
    """

    def __init__(
        self,
        credential: Credential,
        signature_placement: SignaturePlacement = SignaturePlacement.HEADER,
        realm: Optional[str] = None,
        nonce_factory: Callable[[], str] = generate_nonce,
        clock: Callable[[], str] = generate_timestamp,
    ):
        """
        Initialize request builder.

        Args:
            credential: Consumer key/secret
            signature_placement: Default placement of oauth_* parameters
            realm: Optional realm for the Authorization header
            nonce_factory: Callable returning a fresh nonce
            clock: Callable returning the current timestamp as a string
        """
        self.credential = credential
        self.signature_placement = SignaturePlacement(signature_placement)
        self.realm = realm
        self.nonce_factory = nonce_factory
        self.clock = clock

    def oauth_parameters(
        self,
        token: Optional[Token] = None,
        extra: Optional[Dict[str, str]] = None,
        nonce: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Protocol parameters for one request, without the signature.

        Args:
            token: Current request or access token, if any
            extra: Additional protocol parameters (oauth_callback, oauth_verifier)
            nonce: Fixed nonce (generated when omitted)
            timestamp: Fixed timestamp (generated when omitted)

        Returns:
            Ordered mapping of oauth_* parameters
        """
        params = {
            "oauth_consumer_key": self.credential.consumer_key,
            "oauth_nonce": nonce if nonce is not None else self.nonce_factory(),
            "oauth_signature_method": SIGNATURE_METHOD,
            "oauth_timestamp": str(timestamp) if timestamp is not None else self.clock(),
        }
        if token is not None:
            params["oauth_token"] = token.key
        params["oauth_version"] = OAUTH_VERSION
        if extra:
            params.update({name: str(value) for name, value in extra.items() if value is not None})
        return params

    def build(
        self,
        method: str,
        url: str,
        token: Optional[Token] = None,
        data: Optional[Parameters] = None,
        placement: Optional[SignaturePlacement] = None,
        extra_oauth_params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        nonce: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> PreparedRequest:
        """
        Build a signed request.

        For GET, DELETE and HEAD, ``data`` is appended to the query string.
        For POST, PUT and PATCH it becomes a form-encoded body. Either way
        it is signed along with the protocol parameters.

        Args:
            method: HTTP method
            url: Target URL
            token: Token to sign with (None for the request-token step)
            data: Request parameters
            placement: Override for the builder's default placement
            extra_oauth_params: Additional oauth_* parameters
            headers: Extra headers; they never override Authorization
            nonce: Fixed nonce (for tests)
            timestamp: Fixed timestamp (for tests)

        Returns:
            PreparedRequest ready for a Transport

        Raises:
            InvalidRequestError: If method or URL is empty, or form placement
                                 is used with a method that has no body
        """
        if not method:
            raise InvalidRequestError("HTTP method cannot be empty")
        if not url:
            raise InvalidRequestError("URL cannot be empty")

        method = method.upper()
        placement = SignaturePlacement(placement or self.signature_placement)
        has_body = method in BODY_METHODS

        if placement is SignaturePlacement.FORM and not has_body:
            raise InvalidRequestError(f"Form signature placement requires a request body, not {method}")

        data_pairs = to_pairs(data)
        if not has_body and data_pairs:
            url = add_params_to_url(url, data_pairs)
            data_pairs = []

        oauth_params = self.oauth_parameters(token, extra_oauth_params, nonce, timestamp)
        signed_params = list(oauth_params.items()) + data_pairs
        token_secret = token.secret if token is not None else None

        base_string = signature_base_string(method, url, signed_params)
        oauth_params["oauth_signature"] = hmac_sha1(
            signing_key(self.credential.consumer_secret, token_secret), base_string
        )
        logger.debug(f"Signature base string: {base_string}")

        request_headers = dict(headers or {})
        body_pairs = data_pairs

        if placement is SignaturePlacement.HEADER:
            request_headers["Authorization"] = authorization_header(oauth_params, self.realm)
        elif placement is SignaturePlacement.QUERY:
            url = add_params_to_url(url, list(oauth_params.items()))
        else:
            body_pairs = data_pairs + list(oauth_params.items())

        body = None
        if has_body:
            body = encode_pairs(body_pairs)
            request_headers.setdefault("Content-Type", FORM_CONTENT_TYPE)

        return PreparedRequest(
            method=method,
            url=url,
            headers=request_headers,
            body=body,
            oauth_params=oauth_params,
            base_string=base_string,
        )
