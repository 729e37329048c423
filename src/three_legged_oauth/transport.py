"""
HTTP transport for signed OAuth requests.

The state machine and client only depend on the Transport interface.
RequestsTransport is the default implementation. It handles:

- Request retry logic for network errors and 5xx responses
- Conversion of non-2xx responses into TransportError
- Request/response logging (without credentials)

A signed request carries a single-use nonce, so it is never sent twice.
Retries go through a ``rebuild`` callable that signs a fresh request for
every attempt; without one, requests are not retried.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import requests

from .exceptions import TransportError
from .models import PreparedRequest, TransportResponse

logger = logging.getLogger(__name__)

RequestFactory = Callable[[], PreparedRequest]


class Transport(ABC):
    """Executes assembled requests."""

    @abstractmethod
    def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> TransportResponse:
        """
        Execute one HTTP request.

        Returns:
            TransportResponse for 2xx responses

        Raises:
            TransportError: On network failure or non-2xx response
        """

    def send(self, request: PreparedRequest, rebuild: Optional[RequestFactory] = None) -> TransportResponse:
        """
        Execute a PreparedRequest.

        Args:
            request: Signed request for the first attempt
            rebuild: Returns a freshly signed request for each retry
        """
        return self.execute(request.method, request.url, request.headers, request.body)


class RequestsTransport(Transport):
    """
    Transport built on a requests.Session.

    Example:
        transport = RequestsTransport(timeout=10, max_retries=2)
        response = transport.execute("GET", "https://api.example.com/me")
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        max_retries: int = 0,
        retry_delay: float = 1.0,
    ):
        """
        Initialize transport.

        Args:
            session: requests session (creates one if not provided)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            retry_delay: Base delay between retries in seconds (exponential backoff)
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> TransportResponse:
        """
        Execute an HTTP request once.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, ...)
            url: Full URL
            headers: Request headers
            body: Form-encoded body

        Returns:
            TransportResponse for 2xx responses

        Raises:
            TransportError: On network failure or non-2xx response
        """
        logger.debug(f"{method} {url.split('?', 1)[0]}")

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=body.encode("utf-8") if body is not None else None,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error during {method} request: {e}")
            raise TransportError(f"Network error: {e}") from e

        if not response.ok:
            logger.error(f"HTTP error ({response.status_code}): {response.text}")
            raise TransportError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        logger.debug(f"Response: {response.status_code}")
        return TransportResponse(
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    @staticmethod
    def _is_transient(error: TransportError) -> bool:
        return error.status_code is None or error.status_code >= 500

    def send(
        self,
        request: PreparedRequest,
        rebuild: Optional[RequestFactory] = None,
        retry_count: int = 0,
    ) -> TransportResponse:
        """
        Execute a PreparedRequest, retrying transient failures.

        Network errors and 5xx responses are retried up to max_retries
        times with exponential backoff, each time with the request
        returned by ``rebuild``.

        Args:
            request: Signed request for this attempt
            rebuild: Returns a freshly signed request; no retries without it
            retry_count: Current retry attempt (for internal use)

        Raises:
            TransportError: On a non-transient failure or once retries are exhausted
        """
        try:
            return self.execute(request.method, request.url, request.headers, request.body)
        except TransportError as e:
            if rebuild is None or retry_count >= self.max_retries or not self._is_transient(e):
                raise

            delay = self.retry_delay * (2**retry_count)
            logger.warning(
                f"{e}. Retrying in {delay}s "
                f"(attempt {retry_count + 1}/{self.max_retries})"
            )
            time.sleep(delay)
            return self.send(rebuild(), rebuild, retry_count + 1)
