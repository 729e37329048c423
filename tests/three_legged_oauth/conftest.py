"""Pytest fixtures for three-legged OAuth tests.

Provides a stub Transport that records requests and replays canned
responses, plus a configuration and request builder with fixed nonce
and timestamp.
"""

import threading
from typing import Dict, List, Optional, Union

import pytest

from three_legged_oauth.config import OAuthClientConfig
from three_legged_oauth.exceptions import TransportError
from three_legged_oauth.models import Credential, PreparedRequest, TransportResponse
from three_legged_oauth.request_builder import RequestBuilder
from three_legged_oauth.token_storage import InMemoryTokenStore
from three_legged_oauth.transport import Transport


class StubTransport(Transport):
    """Transport that replays queued responses or exceptions in order."""

    def __init__(self, outcomes: Optional[List[Union[TransportResponse, Exception]]] = None):
        self.outcomes = list(outcomes or [])
        self.requests: List[PreparedRequest] = []
        self._lock = threading.Lock()

    def respond(self, body: str, status_code: int = 200) -> "StubTransport":
        self.outcomes.append(TransportResponse(status_code=status_code, body=body))
        return self

    def fail(self, error: Exception) -> "StubTransport":
        self.outcomes.append(error)
        return self

    def execute(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> TransportResponse:
        with self._lock:
            self.requests.append(PreparedRequest(method=method, url=url, headers=dict(headers or {}), body=body))
            if not self.outcomes:
                raise TransportError("No response queued")
            outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def config():
    """Create test OAuth config."""
    return OAuthClientConfig(
        consumer_key="ck",
        consumer_secret="cs",
        base_url="http://example.com/oauth/",
        app_url="https://app.example.com/home",
    )


@pytest.fixture
def store():
    """Create empty in-memory token store."""
    return InMemoryTokenStore()


@pytest.fixture
def transport():
    """Create stub transport with no queued responses."""
    return StubTransport()


@pytest.fixture
def fixed_builder(config):
    """Request builder with nonce 'abc' and timestamp 1000000000."""
    return RequestBuilder(
        Credential("ck", "cs"),
        signature_placement=config.signature_placement,
        nonce_factory=lambda: "abc",
        clock=lambda: "1000000000",
    )
