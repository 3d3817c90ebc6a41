"""Envelope request model, authentication, and serialization."""

from __future__ import annotations

from .auth import AuthToken, Authenticator, resolve_authenticator
from .body import ElementBody, MappingBody, MessageBody, RawBody, as_body
from .builder import build_envelope
from .request import ChannelRoute, EnvelopeRequest, MessageKey
from .transaction import new_transaction_id

__all__ = [
    "AuthToken",
    "Authenticator",
    "ChannelRoute",
    "ElementBody",
    "EnvelopeRequest",
    "MappingBody",
    "MessageBody",
    "MessageKey",
    "RawBody",
    "as_body",
    "build_envelope",
    "new_transaction_id",
    "resolve_authenticator",
]
