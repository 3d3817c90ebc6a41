"""
HTTP transport for Gateway submissions and schema fetches.

Plain ``urllib.request`` with system TLS.  Envelopes carry credentials,
so POSTs are only sent over HTTPS (loopback hosts excepted, for local
test services) and are never redirected.  Schema documents are public
and often served over plain HTTP, so GETs accept either scheme and may
follow redirects, except from HTTPS down to HTTP.
"""

from __future__ import annotations

__all__ = ["http_get", "http_post"]

import logging
import urllib.error
import urllib.request
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from ..constants import (
    BYTES_PER_MB,
    DEFAULT_TIMEOUT_HTTP_GET,
    DEFAULT_TIMEOUT_HTTP_POST,
    MAX_RESPONSE_SIZE,
)
from ..errors import TransportError

if TYPE_CHECKING:
    import http.client

_logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def _require_url(url: str, *, https_only: bool) -> None:
    """Reject malformed URLs, and plaintext ones when credentials are sent.

    Raises:
        TransportError: If the URL is unusable for this request.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https") or not parsed.hostname:
        raise TransportError(f"Not an HTTP(S) URL: {url!r}")
    if https_only and scheme != "https" and parsed.hostname not in _LOOPBACK_HOSTS:
        raise TransportError(
            f"Only HTTPS URLs are allowed (got {scheme}://). "
            "Credentials must not be sent over unencrypted connections."
        )


class _GatewayRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Follows GET redirects that keep the scheme secure; refuses all others.

    urllib would turn a redirected POST into a body-less GET, which the
    Gateway answers with a misleading error, so envelope POSTs fail here.
    """

    def redirect_request(  # type: ignore[override]  # urllib stubs use incompatible signature
        self,
        req: urllib.request.Request,
        fp: http.client.HTTPResponse,
        code: int,
        msg: str,
        headers: http.client.HTTPMessage,
        newurl: str,
    ) -> urllib.request.Request | None:
        if req.get_method() == "POST":
            raise TransportError(
                f"Gateway redirected the submission (HTTP {code}) to {newurl}; "
                "configure that URL directly",
                status=code,
            )
        if urlparse(req.full_url).scheme == "https" and urlparse(newurl).scheme == "http":
            raise TransportError(f"Refused redirect from HTTPS to HTTP: {newurl}", status=code)
        return super().redirect_request(req, fp, code, msg, headers, newurl)


_opener = urllib.request.build_opener(_GatewayRedirectHandler)


def _urlopen(request: urllib.request.Request, *, timeout: int) -> http.client.HTTPResponse:
    return _opener.open(request, timeout=timeout)


def _read_body(response: http.client.HTTPResponse, url: str) -> bytes:
    # One byte past the cap is enough to tell an oversized reply apart
    data = response.read(MAX_RESPONSE_SIZE + 1)
    if len(data) > MAX_RESPONSE_SIZE:
        raise TransportError(
            f"Response from {url} exceeds {MAX_RESPONSE_SIZE // BYTES_PER_MB} MB limit"
        )
    return data


def _as_transport_error(method: str, url: str, exc: Exception, timeout: int) -> TransportError:
    if isinstance(exc, urllib.error.HTTPError):
        return TransportError(
            f"HTTP {method} failed: {url}: HTTP {exc.code} {exc.reason}",
            retryable=exc.code >= 500,
            status=exc.code,
        )
    if isinstance(exc, urllib.error.URLError):
        return TransportError(f"HTTP {method} failed: {url}: {exc.reason}", retryable=True)
    return TransportError(f"Connection timed out after {timeout}s: {url}", retryable=True)


def _exchange(request: urllib.request.Request, timeout: int) -> bytes:
    method = request.get_method()
    url = request.full_url
    try:
        with _urlopen(request, timeout=timeout) as response:
            data = _read_body(response, url)
    except (urllib.error.URLError, TimeoutError) as exc:
        # HTTPError is a URLError subclass
        raise _as_transport_error(method, url, exc, timeout) from exc
    _logger.debug("%s %s -> %d bytes", method, url, len(data))
    return data


# ── Public API ───────────────────────────────────────────────────────


def http_get(url: str, *, timeout: int = DEFAULT_TIMEOUT_HTTP_GET) -> bytes:
    """
    Fetch a URL.

    Args:
        url: Target URL (http or https).
        timeout: HTTP timeout in seconds.

    Returns:
        Response body as bytes.

    Raises:
        TransportError: On connection or HTTP failures. HTTP errors carry
            the status code in ``status``.
    """
    _require_url(url, https_only=False)
    _logger.debug("GET %s (timeout=%ds)", url, timeout)
    return _exchange(urllib.request.Request(url, method="GET"), timeout)  # noqa: S310


def http_post(
    url: str,
    body: bytes,
    *,
    headers: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_HTTP_POST,
) -> bytes:
    """
    Send an HTTP POST.

    Args:
        url: Target URL (https, or http on a loopback host).
        body: Request body bytes.
        headers: Additional HTTP headers.
        timeout: HTTP timeout in seconds.

    Returns:
        Response body as bytes.

    Raises:
        TransportError: On connection or HTTP failures, and on any
            redirect.
    """
    _require_url(url, https_only=True)
    _logger.debug("POST %s (timeout=%ds, %d bytes)", url, timeout, len(body))
    request = urllib.request.Request(  # noqa: S310
        url, data=body, headers=headers or {}, method="POST"
    )
    return _exchange(request, timeout)
