"""
OAuth client for the three-legged handshake and signed API calls.

This module provides the main interface for applications. It exposes the
handshake operations of the state machine and signs GET/POST/PUT/DELETE
requests with the stored token once authorization is complete.
"""

import logging
from typing import Any, Dict, Optional

from .config import OAuthClientConfig
from .exceptions import TransportError
from .models import (
    AuthorizationStatus,
    PreparedRequest,
    RedirectTarget,
    SignaturePlacement,
    TransportResponse,
)
from .request_builder import RequestBuilder
from .signer import Parameters
from .state_machine import AuthorizationStateMachine
from .token_storage import InMemoryTokenStore, TokenStore
from .transport import RequestsTransport, Transport

logger = logging.getLogger(__name__)


class OAuthClient:
    """
    High-level OAuth 1.0a consumer.

    Example:
        client = OAuthClient(config, SessionTokenStore(request.session))

        if client.is_not_started():
            target = client.request_token(callback_url="https://app.example.com/cb")
            return redirect(target.url)

        if client.is_pending_authorization():
            target = client.get_access_token(verifier=request.args["oauth_verifier"])
            return redirect(target.url)

        profile = client.get("account/verify_credentials.json")
    """

    def __init__(
        self,
        config: Optional[OAuthClientConfig] = None,
        token_store: Optional[TokenStore] = None,
        transport: Optional[Transport] = None,
        builder: Optional[RequestBuilder] = None,
    ):
        """
        Initialize OAuth client.

        Args:
            config: OAuth configuration (loads from environment if not provided)
            token_store: Token storage (in-memory if not provided)
            transport: HTTP transport (requests-based if not provided)
            builder: Request builder (created from config if not provided)
        """
        self.config = config or OAuthClientConfig.from_env()
        self.token_store = token_store or InMemoryTokenStore()
        self.transport = transport or RequestsTransport(timeout=self.config.timeout)
        self.builder = builder or RequestBuilder(
            self.config.credential,
            signature_placement=self.config.signature_placement,
            realm=self.config.realm,
        )
        self.state_machine = AuthorizationStateMachine(
            self.config, self.token_store, self.transport, self.builder
        )

        self.debug = False
        self.last_response: Optional[TransportResponse] = None
        self.last_debug_info: Optional[Dict[str, Any]] = None

    # Configuration

    def set_request_token_path(self, path: str) -> "OAuthClient":
        self.state_machine.set_request_token_path(path)
        return self

    def set_authorize_path(self, path: str) -> "OAuthClient":
        self.state_machine.set_authorize_path(path)
        return self

    def set_access_token_path(self, path: str) -> "OAuthClient":
        self.state_machine.set_access_token_path(path)
        return self

    def set_app_url(self, app_url: str) -> "OAuthClient":
        self.state_machine.set_app_url(app_url)
        return self

    # Handshake

    def request_token(self, callback_url: Optional[str] = None) -> RedirectTarget:
        """Obtain a request token; see AuthorizationStateMachine.request_token."""
        return self.state_machine.request_token(callback_url)

    def get_access_token(self, verifier: Optional[str] = None) -> Optional[RedirectTarget]:
        """Obtain the access token; see AuthorizationStateMachine.get_access_token."""
        return self.state_machine.get_access_token(verifier)

    def set_current_access_token(self, token: str, secret: str, status: Optional[Any] = None) -> None:
        self.state_machine.set_current_access_token(token, secret, status)

    def logout(self) -> None:
        self.state_machine.logout()

    def current_status(self) -> AuthorizationStatus:
        return self.state_machine.current_status()

    def is_authorized(self) -> bool:
        return self.state_machine.is_authorized()

    def is_pending_authorization(self) -> bool:
        return self.state_machine.is_pending_authorization()

    def is_not_started(self) -> bool:
        return self.state_machine.is_not_started()

    # Signed requests

    def _full_url(self, url: str) -> str:
        if self.config.request_base_url:
            return self.config.request_base_url + url
        return url

    def fetch(
        self,
        method: str,
        url: str,
        data: Optional[Parameters] = None,
        placement: Optional[SignaturePlacement] = None,
        headers: Optional[Dict[str, str]] = None,
        debug: Optional[bool] = None,
    ) -> str:
        """
        Make a signed request with the stored token.

        Args:
            method: HTTP method
            url: URL, prefixed with request_base_url when configured
            data: Query parameters (GET/DELETE) or form body (POST/PUT)
            placement: Signature placement for this call only
            headers: Extra request headers
            debug: Record last_debug_info for this call (defaults to self.debug)

        Returns:
            Raw response body

        Raises:
            TransportError: If the request fails; its message is kept for
                            pop_last_exception()
            InvalidRequestError: If method or URL is empty
        """
        debug = self.debug if debug is None else debug
        full_url = self._full_url(url)
        token = self.token_store.load_token()
        placement = placement or self.config.signature_placement

        def prepare() -> PreparedRequest:
            request = self.builder.build(
                method, full_url, token=token, data=data, placement=placement, headers=headers
            )
            if debug:
                self.last_debug_info = {
                    "method": request.method,
                    "url": request.url,
                    "headers": dict(request.headers),
                    "body": request.body,
                    "base_string": request.base_string,
                }
            return request

        request = prepare()
        try:
            response = self.transport.send(request, rebuild=prepare)
        except TransportError as e:
            self.token_store.set_last_exception(str(e))
            if debug:
                self.last_debug_info.update(status_code=e.status_code, response_body=e.response_body)
                logger.debug(f"Failed request: {self.last_debug_info}")
            raise

        self.last_response = response
        if debug:
            self.last_debug_info.update(status_code=response.status_code, response_body=response.body)
        return response.body

    def get(self, url: str, params: Optional[Parameters] = None) -> str:
        return self.fetch("GET", url, data=params)

    def post(
        self,
        url: str,
        data: Optional[Parameters] = None,
        placement: SignaturePlacement = SignaturePlacement.HEADER,
        headers: Optional[Dict[str, str]] = None,
        debug: Optional[bool] = None,
    ) -> str:
        """
        Make a signed POST request.

        Unlike the other verbs, POST signs in the Authorization header
        unless another placement is given.

        Args:
            url: URL, prefixed with request_base_url when configured
            data: Form parameters
            placement: Signature placement for this call
            headers: Extra request headers
            debug: Record last_debug_info and log it on failure (defaults to self.debug)

        Returns:
            Raw response body
        """
        return self.fetch("POST", url, data=data, placement=placement, headers=headers, debug=debug)

    def put(self, url: str, data: Optional[Parameters] = None) -> str:
        return self.fetch("PUT", url, data=data)

    def delete(self, url: str) -> str:
        return self.fetch("DELETE", url)

    def pop_last_exception(self) -> Optional[str]:
        """Message of the last failed call, returned once and then cleared."""
        return self.token_store.pop_last_exception()
