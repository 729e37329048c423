"""
OAuth 1.0a HMAC-SHA1 request signing.

Implements the signature algorithm of RFC 5849 section 3.4:

1. Percent-encode parameter names and values (RFC 3986 unreserved set)
2. Collect protocol, query and body parameters, keeping duplicates
3. Sort by encoded name, then encoded value, and join as name=value pairs
4. Build the base string: METHOD & encoded base URI & encoded parameters
5. Build the key: encoded consumer secret & encoded token secret
6. HMAC-SHA1 the base string with the key and base64-encode the digest

Everything here is pure: nonce and timestamp are inputs, nothing is
generated and nothing touches the network.
"""

import base64
import hashlib
import hmac
from typing import Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, urlsplit

from .exceptions import InvalidRequestError

SIGNATURE_METHOD = "HMAC-SHA1"

# RFC 3986 section 2.3 (ALPHA and DIGIT are always safe for quote())
UNRESERVED = "-._~"

# Parameters that never take part in the signature base string
EXCLUDED_PARAMETERS = ("oauth_signature", "realm")

DEFAULT_PORTS = {"http": 80, "https": 443}

Parameters = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def percent_encode(value: Union[str, bytes, int]) -> str:
    """
    Percent-encode a value for OAuth signing.

    Values are UTF-8 encoded first. Every byte outside the unreserved set
    becomes %XX with upper-case hex digits.

    Args:
        value: String, bytes or integer to encode

    Returns:
        Encoded string
    """
    if isinstance(value, bytes):
        data = value
    else:
        data = str(value).encode("utf-8")
    return quote(data, safe=UNRESERVED)


def to_pairs(params: Optional[Parameters]) -> List[Tuple[str, str]]:
    """Convert a mapping or iterable of pairs into a list of (name, value) pairs."""
    if params is None:
        return []
    if isinstance(params, Mapping):
        items: Iterable = params.items()
    else:
        items = params

    pairs = []
    for name, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), "" if v is None else str(v)) for v in value)
        else:
            pairs.append((str(name), "" if value is None else str(value)))
    return pairs


def normalize_parameters(params: Optional[Parameters]) -> str:
    """
    Build the normalized parameter string (RFC 5849 section 3.4.1.3.2).

    Repeated names are kept as separate entries and ordered by value.

    Args:
        params: Protocol, query and body parameters

    Returns:
        Parameters joined as encoded name=value pairs separated by &
    """
    encoded = [
        (percent_encode(name), percent_encode(value))
        for name, value in to_pairs(params)
        if name not in EXCLUDED_PARAMETERS
    ]
    encoded.sort()
    return "&".join(f"{name}={value}" for name, value in encoded)


def base_string_uri(url: str) -> str:
    """
    Base string URI (RFC 5849 section 3.4.1.2).

    Scheme and host are lower-cased, default ports dropped, query and
    fragment removed.

    Raises:
        InvalidRequestError: If the URL is empty or not absolute
    """
    if not url:
        raise InvalidRequestError("URL cannot be empty")

    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise InvalidRequestError(f"URL must be absolute, got {url!r}")

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"

    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"

    path = parts.path or "/"
    return f"{scheme}://{host}{path}"


def signature_base_string(method: str, url: str, params: Optional[Parameters]) -> str:
    """
    Build the signature base string.

    Query parameters already present on ``url`` are signed together with
    ``params``.

    Raises:
        InvalidRequestError: If method or URL is empty
    """
    if not method:
        raise InvalidRequestError("HTTP method cannot be empty")
    if not url:
        raise InvalidRequestError("URL cannot be empty")

    query_pairs = parse_qsl(urlsplit(url).query, keep_blank_values=True)
    all_params = query_pairs + to_pairs(params)

    return "&".join(
        [
            method.upper(),
            percent_encode(base_string_uri(url)),
            percent_encode(normalize_parameters(all_params)),
        ]
    )


def signing_key(consumer_secret: str, token_secret: Optional[str] = None) -> str:
    """Signing key: encoded consumer secret & encoded token secret (may be empty)."""
    return f"{percent_encode(consumer_secret or '')}&{percent_encode(token_secret or '')}"


def hmac_sha1(key: str, base_string: str) -> str:
    """Base64-encoded HMAC-SHA1 digest of ``base_string``."""
    digest = hmac.new(
        key.encode("utf-8"),
        base_string.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign(
    method: str,
    url: str,
    params: Optional[Parameters],
    consumer_secret: str,
    token_secret: Optional[str] = None,
) -> str:
    """
    Compute the HMAC-SHA1 signature of a request.

    Args:
        method: HTTP method
        url: Request URL (query parameters are included in the signature)
        params: oauth_* parameters plus any form body parameters
        consumer_secret: Consumer secret
        token_secret: Token secret, or None before a token is issued

    Returns:
        Base64-encoded signature (value of oauth_signature)

    Raises:
        InvalidRequestError: If method or URL is empty
    """
    base_string = signature_base_string(method, url, params)
    return hmac_sha1(signing_key(consumer_secret, token_secret), base_string)
