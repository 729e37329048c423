"""Tests for the OAuth client facade."""

import os
from unittest import mock
from urllib.parse import parse_qsl, urlsplit

import pytest
import requests

from three_legged_oauth.client import OAuthClient
from three_legged_oauth.exceptions import InvalidStatusError, TransportError
from three_legged_oauth.models import AuthorizationStatus, RedirectTarget, SignaturePlacement, Token
from three_legged_oauth.state_machine import AuthorizationStateMachine
from three_legged_oauth.token_storage import InMemoryTokenStore
from three_legged_oauth.transport import RequestsTransport


def query_of(url):
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


class TestOAuthClient:
    """Tests for OAuthClient class."""

    @pytest.fixture
    def client(self, config, store, transport, fixed_builder):
        config.request_base_url = "https://api.example.com/1/"
        client = OAuthClient(config, store, transport, fixed_builder)
        client.set_current_access_token("access_key", "access_secret", AuthorizationStatus.AUTHORIZED)
        return client

    def test_client_initialization(self, config):
        """OAuthClient creates default collaborators."""
        client = OAuthClient(config)

        assert client.config == config
        assert isinstance(client.token_store, InMemoryTokenStore)
        assert isinstance(client.transport, RequestsTransport)
        assert isinstance(client.state_machine, AuthorizationStateMachine)
        assert client.is_not_started() is True

    @mock.patch.dict(
        os.environ,
        {"OAUTH1_CONSUMER_KEY": "env_key", "OAUTH1_CONSUMER_SECRET": "env_secret"},
        clear=True,
    )
    def test_client_loads_config_from_env(self):
        """OAuthClient loads config from environment if not provided."""
        client = OAuthClient()

        assert client.config.consumer_key == "env_key"
        assert client.config.consumer_secret == "env_secret"

    def test_handshake_through_client(self, config, store, transport, fixed_builder):
        """The client exposes the state machine's handshake operations."""
        client = OAuthClient(config, store, transport, fixed_builder)
        transport.respond("oauth_token=rt&oauth_token_secret=rts")
        transport.respond("oauth_token=at&oauth_token_secret=ats")

        target = client.request_token("https://app.example.com/callback")
        assert target == RedirectTarget("http://example.com/oauth/authorize?oauth_token=rt")
        assert client.is_pending_authorization() is True

        assert client.get_access_token("verifier") == RedirectTarget("https://app.example.com/home")
        assert client.is_authorized() is True
        assert client.current_status() is AuthorizationStatus.AUTHORIZED
        assert store.load_token() == Token("at", "ats")

    def test_logout(self, client, store):
        client.logout()

        assert client.is_not_started() is True
        assert store.has_token_data() is False

    def test_set_current_access_token_invalid_status(self, client):
        with pytest.raises(InvalidStatusError):
            client.set_current_access_token("tk", "ts", 99)

        assert client.is_authorized() is True

    def test_setters_chain(self, config, store, transport):
        client = OAuthClient(config, store, transport)

        result = client.set_request_token_path("rt").set_authorize_path("auth").set_access_token_path("at")
        client.set_app_url("https://app.example.com/done")

        assert result is client
        assert config.request_token_url == "http://example.com/oauth/rt"
        assert config.authorize_url == "http://example.com/oauth/auth"
        assert config.access_token_url == "http://example.com/oauth/at"
        assert config.app_url == "https://app.example.com/done"

    def test_get_signs_with_stored_token(self, client, transport):
        """get prefixes the request base URL and signs in the query by default."""
        transport.respond('{"id": 1}')

        body = client.get("account/me.json", params={"fields": "name"})

        assert body == '{"id": 1}'
        sent = transport.requests[0]
        assert sent.method == "GET"
        assert sent.url.startswith("https://api.example.com/1/account/me.json?")
        params = query_of(sent.url)
        assert params["fields"] == "name"
        assert params["oauth_token"] == "access_key"
        assert "oauth_signature" in params
        assert "Authorization" not in sent.headers

    def test_get_without_request_base_url(self, config, store, transport, fixed_builder):
        client = OAuthClient(config, store, transport, fixed_builder)
        transport.respond("ok")

        client.get("https://other.example.com/r")

        assert transport.requests[0].url.startswith("https://other.example.com/r?")

    def test_unauthorized_get_is_signed_without_token(self, config, store, transport, fixed_builder):
        client = OAuthClient(config, store, transport, fixed_builder)
        transport.respond("ok")

        client.get("https://api.example.com/public")

        assert "oauth_token" not in query_of(transport.requests[0].url)

    def test_post_defaults_to_header_placement(self, client, transport):
        """post signs in the Authorization header and sends a form body."""
        transport.respond("created")

        body = client.post("statuses/update.json", {"status": "hello world"})

        assert body == "created"
        sent = transport.requests[0]
        assert sent.method == "POST"
        assert sent.url == "https://api.example.com/1/statuses/update.json"
        assert sent.headers["Authorization"].startswith("OAuth ")
        assert 'oauth_token="access_key"' in sent.headers["Authorization"]
        assert sent.body == "status=hello%20world"
        assert sent.headers["Content-Type"] == "application/x-www-form-urlencoded"

    def test_post_placement_override(self, client, transport):
        """post can move the signature into the form body for one call."""
        transport.respond("ok").respond("ok")

        client.post("statuses/update.json", {"status": "hi"}, placement=SignaturePlacement.FORM)
        client.post("statuses/update.json", {"status": "hi"})

        form_request, header_request = transport.requests
        assert "Authorization" not in form_request.headers
        assert dict(parse_qsl(form_request.body))["oauth_token"] == "access_key"
        assert header_request.headers["Authorization"].startswith("OAuth ")

    def test_post_extra_headers(self, client, transport):
        transport.respond("ok")

        client.post("upload", {"a": "1"}, headers={"Accept": "application/json"})

        assert transport.requests[0].headers["Accept"] == "application/json"

    def test_put(self, client, transport):
        transport.respond("updated")

        assert client.put("items/1", {"name": "new"}) == "updated"

        sent = transport.requests[0]
        assert sent.method == "PUT"
        assert sent.body == "name=new"
        assert query_of(sent.url)["oauth_token"] == "access_key"

    def test_delete(self, client, transport):
        transport.respond("")

        assert client.delete("items/1") == ""

        sent = transport.requests[0]
        assert sent.method == "DELETE"
        assert sent.body is None
        assert sent.url.startswith("https://api.example.com/1/items/1?")

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_retried_call_is_signed_again(self, mock_sleep, config, store):
        """A retry after a server error goes out with a new nonce."""
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = [
            mock.Mock(status_code=503, ok=False, text="busy", headers={}),
            mock.Mock(status_code=200, ok=True, text="ok", headers={}),
        ]
        client = OAuthClient(config, store, RequestsTransport(session=session, max_retries=1))
        client.set_current_access_token("access_key", "access_secret", AuthorizationStatus.AUTHORIZED)

        assert client.get("https://api.example.com/r") == "ok"

        nonces = [query_of(c[0][1])["oauth_nonce"] for c in session.request.call_args_list]
        assert len(nonces) == 2
        assert nonces[0] != nonces[1]

    def test_last_response(self, client, transport):
        transport.respond("ok", status_code=201)

        client.get("r")

        assert client.last_response.status_code == 201
        assert client.last_response.body == "ok"

    def test_failure_is_raised_and_retained_once(self, client, transport):
        """Transport failures propagate; the message can be read once afterwards."""
        transport.fail(TransportError("Request failed with status 500", status_code=500))

        with pytest.raises(TransportError):
            client.get("r")

        assert client.pop_last_exception() == "Request failed with status 500"
        assert client.pop_last_exception() is None

    def test_debug_info_on_failure(self, client, transport):
        transport.fail(TransportError("Request failed with status 401", status_code=401, response_body="denied"))

        with pytest.raises(TransportError):
            client.post("r", {"a": "1"}, debug=True)

        info = client.last_debug_info
        assert info["method"] == "POST"
        assert info["url"] == "https://api.example.com/1/r"
        assert info["base_string"].startswith("POST&https%3A%2F%2Fapi.example.com%2F1%2Fr&")
        assert info["status_code"] == 401
        assert info["response_body"] == "denied"

    def test_debug_attribute_enables_snapshot(self, client, transport):
        transport.respond("ok")
        client.debug = True

        client.get("r")

        assert client.last_debug_info["status_code"] == 200
        assert client.last_debug_info["response_body"] == "ok"

    def test_no_debug_info_by_default(self, client, transport):
        transport.respond("ok")

        client.get("r")

        assert client.last_debug_info is None
