"""
Authorization state machine for the three-legged OAuth handshake.

This module tracks progress through the handshake:

    NOT_STARTED --request_token--> PENDING_AUTHORIZATION
    PENDING_AUTHORIZATION --get_access_token--> AUTHORIZED
    AUTHORIZED --logout--> NOT_STARTED

A failed access-token exchange clears stored token data and resets the
status to NOT_STARTED before the failure is re-raised. A failed
request-token exchange leaves stored state untouched. Nothing is written
before a response has been fully parsed.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from .config import OAuthClientConfig
from .exceptions import (
    ConcurrentTransitionError,
    ConfigurationError,
    InvalidStatusError,
    TokenExchangeError,
    TransportError,
)
from .models import AuthorizationStatus, PreparedRequest, RedirectTarget, Token
from .request_builder import RequestBuilder, add_params_to_url
from .token_storage import TokenStore
from .transport import RequestsTransport, Transport

logger = logging.getLogger(__name__)


def parse_token_response(body: str) -> Token:
    """
    Parse a token endpoint response.

    Args:
        body: URL-encoded response, e.g. oauth_token=x&oauth_token_secret=y

    Returns:
        Token built from oauth_token and oauth_token_secret

    Raises:
        TokenExchangeError: If either value is missing
    """
    values = dict(parse_qsl(body or "", keep_blank_values=True))
    key = values.get("oauth_token")
    secret = values.get("oauth_token_secret")

    if not key or secret is None:
        logger.error(f"Invalid response from token endpoint: {(body or '')[:200]!r}")
        raise TokenExchangeError(
            "Invalid response from token endpoint: "
            "oauth_token and oauth_token_secret are required"
        )
    return Token(key, secret)


class AuthorizationStateMachine:
    """
    Drives the request-token, authorization and access-token steps.

    All state lives in the TokenStore; the machine itself only remembers
    whether an exchange has been attempted, which freezes the endpoint
    configuration.
    """

    def __init__(
        self,
        config: OAuthClientConfig,
        token_store: TokenStore,
        transport: Optional[Transport] = None,
        builder: Optional[RequestBuilder] = None,
    ):
        """
        Initialize state machine.

        Args:
            config: OAuth configuration
            token_store: Storage for token, secret and status
            transport: HTTP transport (creates a RequestsTransport if not provided)
            builder: Request builder (creates one from config if not provided)
        """
        self.config = config
        self.token_store = token_store
        self.transport = transport or RequestsTransport(timeout=config.timeout)
        self.builder = builder or RequestBuilder(
            config.credential,
            signature_placement=config.signature_placement,
            realm=config.realm,
        )
        self._started = False

        self.token_store.initialise()

    # Configuration

    def _set_config(self, name: str, value: Any) -> "AuthorizationStateMachine":
        if self._started:
            raise ConfigurationError(f"{name} cannot be changed after the handshake has started")
        setattr(self.config, name, value)
        return self

    def set_request_token_path(self, path: str) -> "AuthorizationStateMachine":
        return self._set_config("request_token_path", path)

    def set_authorize_path(self, path: str) -> "AuthorizationStateMachine":
        return self._set_config("authorize_path", path)

    def set_access_token_path(self, path: str) -> "AuthorizationStateMachine":
        return self._set_config("access_token_path", path)

    def set_app_url(self, app_url: str) -> "AuthorizationStateMachine":
        return self._set_config("app_url", app_url)

    # Status queries

    def current_status(self) -> AuthorizationStatus:
        """Stored status, NOT_STARTED if none is stored."""
        status = self.token_store.get_status()
        return status if status is not None else AuthorizationStatus.NOT_STARTED

    def is_authorized(self) -> bool:
        return self.current_status() is AuthorizationStatus.AUTHORIZED

    def is_pending_authorization(self) -> bool:
        return self.current_status() is AuthorizationStatus.PENDING_AUTHORIZATION

    def is_not_started(self) -> bool:
        return self.current_status() is AuthorizationStatus.NOT_STARTED

    def current_token(self) -> Optional[Token]:
        """Stored token, or None if token or secret is missing."""
        return self.token_store.load_token()

    # Handshake

    def _exchange(self, url: str, token: Optional[Token], extra: Optional[Dict[str, str]]) -> Token:
        """
        Call a token endpoint and parse the returned token.

        Signing errors are not caught.

        Raises:
            TokenExchangeError: If the transport fails or the response is unparsable
        """

        def prepare() -> PreparedRequest:
            return self.builder.build(
                self.config.token_request_method,
                url,
                token=token,
                extra_oauth_params=extra,
            )

        request = prepare()
        try:
            response = self.transport.send(request, rebuild=prepare)
        except TransportError as e:
            logger.error(f"Token request to {url} failed: {e}")
            raise TokenExchangeError(f"Token request to {url} failed: {e}") from e

        return parse_token_response(response.body)

    def authorization_url(self, token: Token) -> str:
        """Authorize endpoint URL carrying the request token."""
        return add_params_to_url(self.config.authorize_url, [("oauth_token", token.key)])

    def request_token(self, callback_url: Optional[str] = None) -> RedirectTarget:
        """
        Obtain a request token and return where to send the user.

        Args:
            callback_url: URL the provider redirects to after authorization

        Returns:
            RedirectTarget for the authorize endpoint

        Raises:
            TokenExchangeError: If the exchange fails (stored state is unchanged)
        """
        self._started = True
        extra = {"oauth_callback": callback_url} if callback_url else None

        token = self._exchange(self.config.request_token_url, None, extra)

        self.token_store.save(token, AuthorizationStatus.PENDING_AUTHORIZATION)
        logger.info("Request token obtained, awaiting authorization")

        return RedirectTarget(self.authorization_url(token))

    def get_access_token(self, verifier: Optional[str] = None) -> Optional[RedirectTarget]:
        """
        Exchange the pending request token for an access token.

        The stored status and token key are read before the exchange and
        the result is committed with compare-and-set. If another request
        completed the handshake in the meantime, ConcurrentTransitionError
        is raised and the winner's state is kept.

        Args:
            verifier: oauth_verifier returned to the callback URL

        Returns:
            RedirectTarget for the application URL, or None if no app_url is configured

        Raises:
            TokenExchangeError: If the exchange fails; token data is cleared
                                and status reset to NOT_STARTED first. Also
                                raised, with stored state untouched, when no
                                request token is pending
            ConcurrentTransitionError: If a concurrent request won the commit
        """
        self._started = True
        expected_status = self.token_store.get_status()
        pending = self.token_store.load_token()

        if expected_status is not AuthorizationStatus.PENDING_AUTHORIZATION or pending is None:
            logger.error(f"No pending request token to exchange (status {expected_status!r})")
            raise TokenExchangeError(
                "No pending request token; call request_token() before get_access_token()"
            )

        expected_key = pending.key
        extra = {"oauth_verifier": verifier} if verifier else None

        try:
            token = self._exchange(self.config.access_token_url, pending, extra)
        except TokenExchangeError as e:
            reset = self.token_store.compare_and_set(
                expected_status, expected_key, None, AuthorizationStatus.NOT_STARTED
            )
            self.token_store.set_last_exception(str(e))
            if reset:
                logger.warning("Access token exchange failed, authorization reset")
            raise

        if not self.token_store.compare_and_set(
            expected_status, expected_key, token, AuthorizationStatus.AUTHORIZED
        ):
            logger.warning("Access token discarded, handshake completed by a concurrent request")
            raise ConcurrentTransitionError(
                "Authorization state changed during the access token exchange"
            )

        logger.info("Access token obtained, authorization complete")

        if self.config.app_url:
            return RedirectTarget(self.config.app_url)
        return None

    def set_current_access_token(
        self, token: str, secret: str, status: Optional[Any] = None
    ) -> None:
        """
        Inject a token/secret pair obtained out of band.

        Args:
            token: Token key
            secret: Token secret
            status: Status to force (left unchanged when omitted)

        Raises:
            InvalidStatusError: If status is not a defined AuthorizationStatus value
        """
        new_status = None
        if status is not None:
            try:
                new_status = AuthorizationStatus(status)
            except (TypeError, ValueError) as e:
                raise InvalidStatusError(f"Invalid authorization status: {status!r}") from e

        self.token_store.set_token(token)
        self.token_store.set_secret(secret)
        if new_status is not None:
            self.token_store.set_status(new_status)

    def logout(self) -> None:
        """Clear token data and reset status to NOT_STARTED."""
        self.token_store.clear()
        logger.info("Logged out, token data cleared")
