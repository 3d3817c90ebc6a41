"""
Authentication strategies for ``SenderDetails/IDAuthentication``.

A strategy turns the sender credentials and the transaction ID into the
``Method``/``Value`` pair written into the envelope.  Strategies either
return a complete :class:`AuthToken` or raise
:class:`~govtalk.errors.AuthenticationError`; the builder never writes a
partial authentication block.
"""

from __future__ import annotations

__all__ = [
    "AlternativeAuthentication",
    "AuthToken",
    "Authenticator",
    "ClearAuthentication",
    "MD5Authentication",
    "TokenDeriver",
    "W3CSignedAuthentication",
    "resolve_authenticator",
]

import base64
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from ..errors import AuthenticationError, GovTalkError

_logger = logging.getLogger(__name__)

ROLE_PRINCIPAL = "principal"


@dataclass(frozen=True)
class AuthToken:
    """Authentication method, token value, and optional role."""

    method: str
    value: str
    role: str | None = None


class Authenticator(Protocol):
    """Protocol for envelope authentication strategies."""

    def generate(self, sender_id: str, password: str, transaction_id: str) -> AuthToken:
        """
        Produce the authentication token for one envelope.

        Args:
            sender_id: Gateway sender ID.
            password: Gateway password.
            transaction_id: Transaction ID of the envelope being built.

        Returns:
            The token to embed.

        Raises:
            AuthenticationError: If no token can be produced.
        """
        ...


# Derivation hook for agency-specific "alternative" authentication
TokenDeriver = Callable[[str, str, str], "AuthToken | None"]


class ClearAuthentication:
    """Plaintext password."""

    def generate(self, sender_id: str, password: str, transaction_id: str) -> AuthToken:
        return AuthToken(method="clear", value=password, role=ROLE_PRINCIPAL)


class MD5Authentication:
    """Base64 of the raw MD5 digest of the lower-cased password."""

    def generate(self, sender_id: str, password: str, transaction_id: str) -> AuthToken:
        digest = hashlib.md5(password.lower().encode("utf-8")).digest()  # noqa: S324
        return AuthToken(method="MD5", value=base64.b64encode(digest).decode("ascii"))


class AlternativeAuthentication:
    """Delegates to an agency-supplied derivation function.

    Args:
        derive: Called with ``(sender_id, password, transaction_id)``;
            returns an :class:`AuthToken` or None on failure.  May be None
            when no integration has supplied one, in which case every
            attempt fails.
    """

    def __init__(self, derive: TokenDeriver | None = None) -> None:
        self.derive = derive

    def generate(self, sender_id: str, password: str, transaction_id: str) -> AuthToken:
        if self.derive is None:
            raise AuthenticationError(
                "Alternative authentication requested but no derivation is defined"
            )
        try:
            token = self.derive(sender_id, password, transaction_id)
        except GovTalkError as e:
            raise AuthenticationError(f"Alternative authentication failed: {e}") from e
        if token is None or not token.method or not token.value:
            raise AuthenticationError("Alternative authentication produced no token")
        if token.role is None:
            token = AuthToken(method=token.method, value=token.value, role=ROLE_PRINCIPAL)
        return token


class W3CSignedAuthentication:
    """Placeholder for W3C XML-signature authentication (not implemented)."""

    def generate(self, sender_id: str, password: str, transaction_id: str) -> AuthToken:
        raise AuthenticationError("W3Csigned authentication is not implemented")


def resolve_authenticator(auth_type: str, alternative: TokenDeriver | None = None) -> Authenticator:
    """
    Select the strategy for an authentication type.

    Args:
        auth_type: One of ``clear``, ``MD5``, ``alternative``, ``W3Csigned``.
        alternative: Derivation used when ``auth_type`` is ``alternative``.

    Raises:
        AuthenticationError: If the type is unknown.
    """
    if auth_type == "clear":
        return ClearAuthentication()
    if auth_type == "MD5":
        return MD5Authentication()
    if auth_type == "alternative":
        return AlternativeAuthentication(alternative)
    if auth_type == "W3Csigned":
        return W3CSignedAuthentication()
    _logger.warning("Unknown authentication type: %s", auth_type)
    raise AuthenticationError(f"Unknown authentication type: {auth_type!r}")
