"""
govtalk -- Python client for the UK Government Gateway GovTalk protocol.

Builds, authenticates and sends GovTalk 2.0 envelopes, then parses and
classifies the Gateway's replies.  Agency extensions cover HMRC (IRmark,
VAT returns) and the Companies House XML Gateway.
"""

from __future__ import annotations

from .agencies import CompaniesHouseClient, HmrcClient, HmrcVatClient, irmark_digest
from .api import create_client
from .client import ErrorLogEntry, ExchangeState, GovTalkClient, SendResult
from .constants import __version__
from .core import (
    AuthToken,
    ChannelRoute,
    ElementBody,
    EnvelopeRequest,
    MappingBody,
    RawBody,
    build_envelope,
    new_transaction_id,
)
from .errors import (
    AuthenticationError,
    ConfigError,
    DigestError,
    GovTalkError,
    ResponseError,
    SchemaError,
    TransportError,
    ValidationError,
)
from .network.parser import EnvelopeResponse, GatewayError, ResponseEndpoint, StatusRecord

__all__ = [
    "AuthToken",
    "AuthenticationError",
    "ChannelRoute",
    "CompaniesHouseClient",
    "ConfigError",
    "DigestError",
    "ElementBody",
    "EnvelopeRequest",
    "EnvelopeResponse",
    "ErrorLogEntry",
    "ExchangeState",
    "GatewayError",
    "GovTalkClient",
    "GovTalkError",
    "HmrcClient",
    "HmrcVatClient",
    "MappingBody",
    "RawBody",
    "ResponseEndpoint",
    "ResponseError",
    "SchemaError",
    "SendResult",
    "StatusRecord",
    "TransportError",
    "ValidationError",
    "__version__",
    "build_envelope",
    "create_client",
    "irmark_digest",
    "new_transaction_id",
]
