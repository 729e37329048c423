"""
Configuration for the three-legged OAuth client.

Configuration can be loaded from environment variables or provided
programmatically. Endpoint URLs are the base URL and path concatenated
as given; no slashes are added or removed, so the base URL and paths
must agree on their separators.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .exceptions import ConfigurationError
from .models import Credential, SignaturePlacement


@dataclass
class OAuthClientConfig:
    """
    Configuration for an OAuth 1.0a consumer.

    Attributes:
        consumer_key: Consumer key from the service provider
        consumer_secret: Consumer secret from the service provider
        base_url: OAuth base URL, endpoint paths are appended to it
        request_token_path: Path of the temporary credential endpoint
        authorize_path: Path of the resource owner authorization endpoint
        access_token_path: Path of the token credential endpoint
        app_url: Application URL to return to after a successful handshake
        request_base_url: Prefix for URLs given to get/post/put/delete
        signature_placement: Default placement of oauth_* parameters
        token_request_method: HTTP method for the token endpoints
        realm: Optional realm for the Authorization header
        timeout: HTTP timeout in seconds
    """

    # Required - from the service provider
    consumer_key: str
    consumer_secret: str = field(repr=False)

    # Protocol endpoints
    base_url: str = "http://example.com/oauth/"
    request_token_path: str = "request_token"
    authorize_path: str = "authorize"
    access_token_path: str = "access_token"

    # Application URLs
    app_url: Optional[str] = None
    request_base_url: Optional[str] = None

    # Signing
    signature_placement: SignaturePlacement = SignaturePlacement.QUERY
    token_request_method: str = "POST"
    realm: Optional[str] = None

    timeout: float = 30

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.consumer_key:
            raise ConfigurationError("consumer_key cannot be empty")

        if not self.consumer_secret:
            raise ConfigurationError("consumer_secret cannot be empty")

        if not self.base_url:
            raise ConfigurationError("base_url cannot be empty")

        try:
            self.signature_placement = SignaturePlacement(self.signature_placement)
        except ValueError as e:
            raise ConfigurationError(
                f"signature_placement must be one of header, query, form; "
                f"got {self.signature_placement!r}"
            ) from e

        if not self.token_request_method:
            raise ConfigurationError("token_request_method cannot be empty")
        self.token_request_method = self.token_request_method.upper()

        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")

    @property
    def credential(self) -> Credential:
        """Consumer credentials as an immutable pair."""
        return Credential(self.consumer_key, self.consumer_secret)

    @property
    def request_token_url(self) -> str:
        return self.base_url + self.request_token_path

    @property
    def authorize_url(self) -> str:
        return self.base_url + self.authorize_path

    @property
    def access_token_url(self) -> str:
        return self.base_url + self.access_token_path

    @classmethod
    def from_env(cls) -> "OAuthClientConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            OAUTH1_CONSUMER_KEY: Consumer key
            OAUTH1_CONSUMER_SECRET: Consumer secret

        Optional environment variables:
            OAUTH1_BASE_URL: OAuth base URL (default: http://example.com/oauth/)
            OAUTH1_REQUEST_TOKEN_PATH: Request token path (default: request_token)
            OAUTH1_AUTHORIZE_PATH: Authorize path (default: authorize)
            OAUTH1_ACCESS_TOKEN_PATH: Access token path (default: access_token)
            OAUTH1_APP_URL: Application return URL
            OAUTH1_REQUEST_BASE_URL: Prefix for signed API calls
            OAUTH1_SIGNATURE_PLACEMENT: header, query or form (default: query)
            OAUTH1_TIMEOUT: HTTP timeout in seconds (default: 30)

        Returns:
            OAuthClientConfig instance

        Raises:
            ConfigurationError: If required environment variables are missing
                                or a value is invalid
        """
        consumer_key = os.environ.get("OAUTH1_CONSUMER_KEY")
        consumer_secret = os.environ.get("OAUTH1_CONSUMER_SECRET")

        if not consumer_key or not consumer_secret:
            raise ConfigurationError(
                "Missing OAuth consumer credentials. Set environment variables:\n"
                "  OAUTH1_CONSUMER_KEY=your_consumer_key\n"
                "  OAUTH1_CONSUMER_SECRET=your_consumer_secret"
            )

        timeout = os.environ.get("OAUTH1_TIMEOUT", "30")
        try:
            timeout_value = float(timeout)
        except ValueError as e:
            raise ConfigurationError(f"OAUTH1_TIMEOUT must be a number, got {timeout!r}") from e

        return cls(
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            base_url=os.environ.get("OAUTH1_BASE_URL", "http://example.com/oauth/"),
            request_token_path=os.environ.get("OAUTH1_REQUEST_TOKEN_PATH", "request_token"),
            authorize_path=os.environ.get("OAUTH1_AUTHORIZE_PATH", "authorize"),
            access_token_path=os.environ.get("OAUTH1_ACCESS_TOKEN_PATH", "access_token"),
            app_url=os.environ.get("OAUTH1_APP_URL") or None,
            request_base_url=os.environ.get("OAUTH1_REQUEST_BASE_URL") or None,
            signature_placement=os.environ.get("OAUTH1_SIGNATURE_PLACEMENT", "query").lower(),
            timeout=timeout_value,
        )
