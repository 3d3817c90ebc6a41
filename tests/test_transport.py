"""Tests for govtalk.network.transport -- http_get, http_post, and the HTTP transport."""

import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from govtalk.errors import TransportError
from govtalk.network import transport
from govtalk.network.http_transport import HttpGatewayTransport


def _make_urllib_response(data: bytes) -> MagicMock:
    """Build a mock urllib response that works with chunked read()."""
    mock = MagicMock()
    mock.read.side_effect = [data, b""]
    mock.__enter__ = MagicMock(return_value=mock)
    mock.__exit__ = MagicMock(return_value=False)
    return mock


# ── URL checks ───────────────────────────────────────────────────────


def test_post_refuses_plain_http():
    with pytest.raises(TransportError, match="Only HTTPS"):
        transport.http_post("http://gateway.example.gov.uk/submission", b"x")


def test_post_allows_loopback_http():
    with patch.object(
        transport, "_urlopen", return_value=_make_urllib_response(b"ok")
    ) as mock_open:
        assert transport.http_post("http://localhost:8080/submission", b"x") == b"ok"
    assert mock_open.called


def test_get_allows_plain_http():
    with patch.object(transport, "_urlopen", return_value=_make_urllib_response(b"xsd")):
        assert transport.http_get("http://www.govtalk.gov.uk/a.xsd") == b"xsd"


@pytest.mark.parametrize("url", ["ftp://x.gov.uk/a", "not a url", "https://"])
def test_rejects_non_http_urls(url):
    with pytest.raises(TransportError, match="Not an HTTP"):
        transport.http_get(url)


# ── http_post ────────────────────────────────────────────────────────


def test_post_sends_body_and_headers():
    with patch.object(
        transport, "_urlopen", return_value=_make_urllib_response(b"reply")
    ) as mock_open:
        result = transport.http_post(
            "https://gateway.example.gov.uk/submission",
            b"<GovTalkMessage/>",
            headers={"Content-Type": "text/xml"},
            timeout=30,
        )
    assert result == b"reply"
    req = mock_open.call_args[0][0]
    assert req.data == b"<GovTalkMessage/>"
    assert req.get_method() == "POST"
    assert req.get_header("Content-type") == "text/xml"
    assert mock_open.call_args[1]["timeout"] == 30


def test_http_error_carries_status():
    error = urllib.error.HTTPError("https://x.gov.uk", 503, "Unavailable", {}, None)
    with (
        patch.object(transport, "_urlopen", side_effect=error),
        pytest.raises(TransportError) as exc_info,
    ):
        transport.http_post("https://x.gov.uk/submission", b"x")
    assert exc_info.value.status == 503
    assert exc_info.value.retryable is True


def test_http_404_not_retryable():
    error = urllib.error.HTTPError("https://x.gov.uk", 404, "Not Found", {}, None)
    with (
        patch.object(transport, "_urlopen", side_effect=error),
        pytest.raises(TransportError) as exc_info,
    ):
        transport.http_get("https://x.gov.uk/a.xsd")
    assert exc_info.value.status == 404
    assert exc_info.value.retryable is False


def test_url_error_retryable():
    with (
        patch.object(
            transport, "_urlopen", side_effect=urllib.error.URLError("Connection refused")
        ),
        pytest.raises(TransportError, match="Connection refused") as exc_info,
    ):
        transport.http_post("https://x.gov.uk/submission", b"x")
    assert exc_info.value.retryable is True


def test_timeout():
    with (
        patch.object(transport, "_urlopen", side_effect=TimeoutError()),
        pytest.raises(TransportError, match="timed out"),
    ):
        transport.http_post("https://x.gov.uk/submission", b"x", timeout=5)


def test_response_size_limit():
    response = MagicMock()
    response.read.return_value = b"x" * 16
    with (
        patch.object(transport, "MAX_RESPONSE_SIZE", 15),
        pytest.raises(TransportError, match="exceeds"),
    ):
        transport._read_body(response, "https://x.gov.uk")
    response.read.assert_called_once_with(16)


def test_response_at_size_limit_accepted():
    response = MagicMock()
    response.read.return_value = b"x" * 15
    with patch.object(transport, "MAX_RESPONSE_SIZE", 15):
        assert transport._read_body(response, "https://x.gov.uk") == b"x" * 15


# ── Redirects ────────────────────────────────────────────────────────


def _redirected(method: str, url: str) -> MagicMock:
    req = MagicMock()
    req.full_url = url
    req.get_method.return_value = method
    return req


def test_redirect_downgrade_refused():
    handler = transport._GatewayRedirectHandler()
    req = _redirected("GET", "https://x.gov.uk/a.xsd")
    with pytest.raises(TransportError, match="Refused redirect") as exc_info:
        handler.redirect_request(req, None, 302, "Found", {}, "http://x.gov.uk/a.xsd")
    assert exc_info.value.status == 302


def test_post_redirect_refused():
    handler = transport._GatewayRedirectHandler()
    req = _redirected("POST", "https://x.gov.uk/submission")
    with pytest.raises(TransportError, match="redirected the submission"):
        handler.redirect_request(req, None, 301, "Moved", {}, "https://y.gov.uk/submission")


# ── HttpGatewayTransport ─────────────────────────────────────────────


def test_gateway_transport_posts_xml():
    with patch(
        "govtalk.network.http_transport.http_post", return_value=b"<reply/>"
    ) as mock_post:
        result = HttpGatewayTransport().post("https://x.gov.uk/submission", b"<env/>", 45)
    assert result == b"<reply/>"
    args, kwargs = mock_post.call_args
    assert args == ("https://x.gov.uk/submission", b"<env/>")
    assert kwargs["timeout"] == 45
    assert kwargs["headers"]["Content-Type"].startswith("text/xml")
