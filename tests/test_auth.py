"""Tests for govtalk.core.auth -- authentication strategies."""

import base64
import hashlib

import pytest

from govtalk.core.auth import (
    AlternativeAuthentication,
    AuthToken,
    ClearAuthentication,
    MD5Authentication,
    W3CSignedAuthentication,
    resolve_authenticator,
)
from govtalk.errors import AuthenticationError, ValidationError


def test_clear_token():
    token = ClearAuthentication().generate("user", "Secret", "1")
    assert token == AuthToken(method="clear", value="Secret", role="principal")


def test_md5_token_lowercases_password():
    token = MD5Authentication().generate("user", "Secret", "1")
    expected = base64.b64encode(hashlib.md5(b"secret").digest()).decode()
    assert token.method == "MD5"
    assert token.value == expected
    assert token.role is None


def test_alternative_adds_principal_role():
    auth = AlternativeAuthentication(lambda s, p, t: AuthToken("CHMD5", f"{s}{p}{t}"))
    token = auth.generate("u", "p", "42")
    assert token == AuthToken("CHMD5", "up42", "principal")


def test_alternative_keeps_explicit_role():
    auth = AlternativeAuthentication(lambda s, p, t: AuthToken("X", "v", "agent"))
    assert auth.generate("u", "p", "1").role == "agent"


def test_alternative_without_derivation_fails():
    with pytest.raises(AuthenticationError, match="no derivation"):
        AlternativeAuthentication().generate("u", "p", "1")


def test_alternative_none_token_fails():
    with pytest.raises(AuthenticationError, match="no token"):
        AlternativeAuthentication(lambda s, p, t: None).generate("u", "p", "1")


def test_alternative_wraps_library_errors():
    def derive(sender_id, password, transaction_id):
        raise ValidationError("bad transaction")

    with pytest.raises(AuthenticationError, match="bad transaction"):
        AlternativeAuthentication(derive).generate("u", "p", "1")


def test_w3c_signed_always_fails():
    with pytest.raises(AuthenticationError):
        W3CSignedAuthentication().generate("u", "p", "1")


def test_resolve_authenticator():
    assert isinstance(resolve_authenticator("clear"), ClearAuthentication)
    assert isinstance(resolve_authenticator("MD5"), MD5Authentication)
    assert isinstance(resolve_authenticator("alternative"), AlternativeAuthentication)
    assert isinstance(resolve_authenticator("W3Csigned"), W3CSignedAuthentication)
    with pytest.raises(AuthenticationError):
        resolve_authenticator("kerberos")
