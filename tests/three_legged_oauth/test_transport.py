"""Tests for the requests-based transport."""

from unittest import mock
from urllib.parse import parse_qsl, urlsplit

import pytest
import requests

from three_legged_oauth.exceptions import TransportError
from three_legged_oauth.models import Credential, PreparedRequest, SignaturePlacement, Token
from three_legged_oauth.request_builder import RequestBuilder
from three_legged_oauth.transport import RequestsTransport

GET_REQUEST = PreparedRequest(method="GET", url="https://api.example.com/r", headers={}, body=None)


def make_response(status_code=200, text="ok", headers=None):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    response.headers = headers or {}
    return response


class TestRequestsTransport:
    """Tests for RequestsTransport class."""

    @pytest.fixture
    def session(self):
        return mock.Mock(spec=requests.Session)

    def test_execute_success(self, session):
        """Successful responses return status and body."""
        session.request.return_value = make_response(200, "oauth_token=a", {"Content-Type": "text/plain"})
        transport = RequestsTransport(session=session, timeout=10)

        response = transport.execute(
            "POST",
            "https://api.example.com/r",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body="a=1",
        )

        assert response.status_code == 200
        assert response.body == "oauth_token=a"
        assert response.headers == {"Content-Type": "text/plain"}
        session.request.assert_called_once_with(
            "POST",
            "https://api.example.com/r",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data=b"a=1",
            timeout=10,
        )

    def test_execute_without_body(self, session):
        session.request.return_value = make_response()
        RequestsTransport(session=session).execute("GET", "https://api.example.com/r")

        assert session.request.call_args[1]["data"] is None

    def test_send_prepared_request(self, session):
        session.request.return_value = make_response(201, "created")
        transport = RequestsTransport(session=session)

        response = transport.send(
            PreparedRequest(method="PUT", url="https://api.example.com/r", headers={}, body="x=1")
        )

        assert response.status_code == 201
        assert session.request.call_args[0] == ("PUT", "https://api.example.com/r")

    def test_error_status_raises(self, session):
        """Non-2xx responses raise TransportError carrying status and body."""
        session.request.return_value = make_response(401, "oauth_problem=signature_invalid")
        transport = RequestsTransport(session=session)

        with pytest.raises(TransportError, match="401") as exc_info:
            transport.execute("GET", "https://api.example.com/r")

        assert exc_info.value.status_code == 401
        assert exc_info.value.response_body == "oauth_problem=signature_invalid"

    def test_client_errors_are_not_retried(self, session):
        session.request.return_value = make_response(400, "bad")
        transport = RequestsTransport(session=session, max_retries=3)

        with pytest.raises(TransportError):
            transport.send(GET_REQUEST, rebuild=lambda: GET_REQUEST)

        assert session.request.call_count == 1

    def test_network_error_raises(self, session):
        session.request.side_effect = requests.ConnectionError("refused")
        transport = RequestsTransport(session=session)

        with pytest.raises(TransportError, match="Network error") as exc_info:
            transport.execute("GET", "https://api.example.com/r")

        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_server_error_is_retried(self, mock_sleep, session):
        """5xx responses are retried with exponential backoff."""
        session.request.side_effect = [make_response(503, "busy"), make_response(503, "busy"), make_response(200, "ok")]
        transport = RequestsTransport(session=session, max_retries=2, retry_delay=0.5)

        response = transport.send(GET_REQUEST, rebuild=lambda: GET_REQUEST)

        assert response.body == "ok"
        assert session.request.call_count == 3
        assert [c[0][0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_network_error_is_retried(self, mock_sleep, session):
        session.request.side_effect = [requests.Timeout("slow"), make_response(200, "ok")]
        transport = RequestsTransport(session=session, max_retries=1)

        assert transport.send(GET_REQUEST, rebuild=lambda: GET_REQUEST).body == "ok"
        mock_sleep.assert_called_once_with(1.0)

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_server_error_after_retries_raises(self, mock_sleep, session):
        session.request.return_value = make_response(500, "oops")
        transport = RequestsTransport(session=session, max_retries=1)

        with pytest.raises(TransportError) as exc_info:
            transport.send(GET_REQUEST, rebuild=lambda: GET_REQUEST)

        assert exc_info.value.status_code == 500
        assert session.request.call_count == 2

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_no_retry_without_rebuild(self, mock_sleep, session):
        """A signed request is never sent twice."""
        session.request.return_value = make_response(503, "busy")
        transport = RequestsTransport(session=session, max_retries=3)

        with pytest.raises(TransportError):
            transport.send(GET_REQUEST)

        assert session.request.call_count == 1
        mock_sleep.assert_not_called()

    def test_execute_makes_one_attempt(self, session):
        session.request.return_value = make_response(503, "busy")
        transport = RequestsTransport(session=session, max_retries=3)

        with pytest.raises(TransportError):
            transport.execute("GET", "https://api.example.com/r")

        assert session.request.call_count == 1

    @mock.patch("three_legged_oauth.transport.time.sleep")
    def test_retry_is_signed_with_fresh_nonce(self, mock_sleep, session):
        """Each retry carries a new oauth_nonce and signature."""
        session.request.side_effect = [make_response(503, "busy"), make_response(200, "ok")]
        transport = RequestsTransport(session=session, max_retries=1)
        builder = RequestBuilder(Credential("ck", "cs"), signature_placement=SignaturePlacement.QUERY)

        def prepare():
            return builder.build("GET", "https://api.example.com/r", token=Token("tk", "ts"))

        transport.send(prepare(), rebuild=prepare)

        sent = [dict(parse_qsl(urlsplit(c[0][1]).query)) for c in session.request.call_args_list]
        assert len(sent) == 2
        assert sent[0]["oauth_nonce"] != sent[1]["oauth_nonce"]
        assert sent[0]["oauth_signature"] != sent[1]["oauth_signature"]

    def test_creates_default_session(self):
        assert isinstance(RequestsTransport().session, requests.Session)
