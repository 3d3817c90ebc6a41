"""
HTTP implementation of the GatewayTransport protocol.
"""

from __future__ import annotations

__all__ = ["HttpGatewayTransport"]

import logging

from .transport import http_post

_logger = logging.getLogger(__name__)

_HEADERS = {"Content-Type": "text/xml; charset=utf-8"}


class HttpGatewayTransport:
    """POSTs envelopes over HTTPS using :func:`~govtalk.network.transport.http_post`."""

    def post(self, url: str, body: bytes, timeout: int) -> bytes:
        _logger.debug("Gateway request: url=%s, %d bytes", url, len(body))
        response = http_post(url, body, headers=dict(_HEADERS), timeout=timeout)
        _logger.debug("Gateway response: %d bytes", len(response))
        return response
