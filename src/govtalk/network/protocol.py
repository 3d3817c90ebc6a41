"""
Transport protocol abstraction for Gateway submissions.

The client depends on this protocol, not on a concrete HTTP stack, so
tests and alternative transports can be injected.
"""

from __future__ import annotations

from typing import Protocol


class GatewayTransport(Protocol):
    """Protocol for delivering an envelope to a Gateway endpoint."""

    def post(self, url: str, body: bytes, timeout: int) -> bytes:
        """
        POST a serialized envelope and return the raw reply.

        Args:
            url: Gateway endpoint URL.
            body: UTF-8 encoded envelope.
            timeout: Request timeout in seconds.

        Returns:
            Response body bytes (may be empty).

        Raises:
            TransportError: On connection or HTTP failures.
        """
        ...
