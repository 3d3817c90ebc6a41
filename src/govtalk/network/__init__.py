"""HTTP transport, response parsing, and schema validation."""

from __future__ import annotations

from .http_transport import HttpGatewayTransport
from .protocol import GatewayTransport

__all__ = ["GatewayTransport", "HttpGatewayTransport"]
