"""Tests for govtalk.core.builder -- envelope serialization."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from govtalk.core.auth import AuthToken
from govtalk.core.builder import build_envelope, default_channel_route, identity_digest
from govtalk.core.request import ChannelRoute, EnvelopeRequest
from govtalk.errors import AuthenticationError, DigestError, ValidationError

NS = {"g": "http://www.govtalk.gov.uk/CM/envelope"}
SELF_ROUTE = ChannelRoute(uri="urn:self", product="Self", version="9.9", timestamp="2024-01-01")


def _request(**overrides) -> EnvelopeRequest:
    request = EnvelopeRequest()
    request.set_message_class("HMRC-VAT-DEC")
    request.set_qualifier("request")
    request.set_function("submit")
    request.set_auth_type("clear")
    request.set_body("<Payload>1</Payload>")
    for name, value in overrides.items():
        setattr(request, name, value)
    return request


def _build(request: EnvelopeRequest, **kwargs) -> str:
    kwargs.setdefault("sender_id", "SENDER")
    kwargs.setdefault("password", "pw")
    kwargs.setdefault("transaction_id", "12345")
    kwargs.setdefault("self_route", SELF_ROUTE)
    return build_envelope(request, **kwargs)


def _children(elem: ET.Element) -> list[str]:
    return [child.tag.split("}")[-1] for child in elem]


# ── Structure ────────────────────────────────────────────────────────


def test_root_and_top_level_order():
    root = ET.fromstring(_build(_request()))
    assert root.tag == "{http://www.govtalk.gov.uk/CM/envelope}GovTalkMessage"
    assert _children(root) == ["EnvelopeVersion", "Header", "GovTalkDetails", "Body"]
    assert root.findtext("g:EnvelopeVersion", namespaces=NS) == "2.0"


def test_message_details_order_and_values():
    root = ET.fromstring(_build(_request(correlation_id="ABC", test_flag=True)))
    details = root.find("g:Header/g:MessageDetails", NS)
    assert _children(details) == [
        "Class",
        "Qualifier",
        "Function",
        "TransactionID",
        "CorrelationID",
        "Transformation",
        "GatewayTest",
    ]
    assert details.findtext("g:TransactionID", namespaces=NS) == "12345"
    assert details.findtext("g:CorrelationID", namespaces=NS) == "ABC"
    assert details.findtext("g:GatewayTest", namespaces=NS) == "1"


def test_function_omitted_when_unset():
    root = ET.fromstring(_build(_request(function=None)))
    details = root.find("g:Header/g:MessageDetails", NS)
    assert "Function" not in _children(details)


def test_schema_location_appended():
    request = _request()
    request.set_schema_location("http://www.govtalk.gov.uk/body.xsd")
    xml = _build(request)
    root = ET.fromstring(xml)
    location = root.get("{http://www.w3.org/2001/XMLSchema-instance}schemaLocation")
    assert location.split() == [
        "http://www.govtalk.gov.uk/CM/envelope",
        "http://www.govtalk.gov.uk/documents/envelope-v2-0.xsd",
        "http://www.govtalk.gov.uk/body.xsd",
    ]


# ── Sender details ───────────────────────────────────────────────────


def test_clear_auth_includes_principal_role():
    root = ET.fromstring(_build(_request()))
    auth = root.find("g:Header/g:SenderDetails/g:IDAuthentication/g:Authentication", NS)
    assert _children(auth) == ["Method", "Role", "Value"]
    assert auth.findtext("g:Role", namespaces=NS) == "principal"
    assert auth.findtext("g:Value", namespaces=NS) == "pw"


def test_md5_auth_omits_role():
    root = ET.fromstring(_build(_request(auth_type="MD5")))
    auth = root.find("g:Header/g:SenderDetails/g:IDAuthentication/g:Authentication", NS)
    assert _children(auth) == ["Method", "Value"]


def test_sender_email_written():
    request = _request()
    request.set_sender_email("a@example.com")
    root = ET.fromstring(_build(request))
    email = root.findtext("g:Header/g:SenderDetails/g:EmailAddress", namespaces=NS)
    assert email == "a@example.com"


def test_credentials_escaped():
    root = ET.fromstring(_build(_request(), sender_id="A&B", password="<pw>"))
    ids = root.find("g:Header/g:SenderDetails/g:IDAuthentication", NS)
    assert ids.findtext("g:SenderID", namespaces=NS) == "A&B"
    assert ids.findtext("g:Authentication/g:Value", namespaces=NS) == "<pw>"


def test_explicit_authenticator():
    class Fixed:
        def generate(self, sender_id, password, transaction_id):
            return AuthToken("CHMD5", f"tok-{transaction_id}", "principal")

    root = ET.fromstring(_build(_request(auth_type="alternative"), authenticator=Fixed()))
    auth = root.find("g:Header/g:SenderDetails/g:IDAuthentication/g:Authentication", NS)
    assert auth.findtext("g:Value", namespaces=NS) == "tok-12345"


def test_authentication_failure_propagates():
    with pytest.raises(AuthenticationError):
        _build(_request(auth_type="W3Csigned"))


# ── GovTalkDetails ───────────────────────────────────────────────────


def test_keys_and_targets():
    request = _request()
    request.add_key("VATRegNo", "999900001")
    request.add_target_organisation("HMRC")
    root = ET.fromstring(_build(request))
    details = root.find("g:GovTalkDetails", NS)
    assert _children(details)[:2] == ["Keys", "TargetDetails"]
    key = details.find("g:Keys/g:Key", NS)
    assert key.get("Type") == "VATRegNo"
    assert key.text == "999900001"
    assert details.findtext("g:TargetDetails/g:Organisation", namespaces=NS) == "HMRC"


def test_self_route_last_and_once():
    request = _request()
    request.add_channel_route("urn:caller", "Caller", "1.0")
    request.add_channel_route("urn:self-dup", "Self", "9.9")
    root = ET.fromstring(_build(request))
    routes = root.findall("g:GovTalkDetails/g:ChannelRouting", NS)
    uris = [r.findtext("g:Channel/g:URI", namespaces=NS) for r in routes]
    assert uris == ["urn:caller", "urn:self"]


def test_route_ids_written():
    request = _request()
    request.add_channel_route("urn:caller", "Caller", "1.0", ids=[("agent", "A1")])
    root = ET.fromstring(_build(request))
    route = root.find("g:GovTalkDetails/g:ChannelRouting", NS)
    assert _children(route) == ["Channel", "ID", "Timestamp"]
    assert route.find("g:ID", NS).get("type") == "agent"


def test_default_self_route_is_library():
    route = default_channel_route()
    xml = build_envelope(_request(), sender_id="S", password="p", transaction_id="1")
    root = ET.fromstring(xml)
    routes = root.findall("g:GovTalkDetails/g:ChannelRouting", NS)
    assert routes[-1].findtext("g:Channel/g:Product", namespaces=NS) == route.product


def test_request_not_mutated():
    request = _request()
    request.add_channel_route("urn:caller", "Caller", "1.0")
    _build(request)
    _build(request)
    assert len(request.channel_routes) == 1


# ── Body ─────────────────────────────────────────────────────────────


def test_body_inserted_raw():
    root = ET.fromstring(_build(_request()))
    assert root.find("g:Body/g:Payload", NS).text == "1"


def test_empty_body_allowed():
    request = _request()
    request.set_body("")
    root = ET.fromstring(_build(request))
    assert len(root.find("g:Body", NS)) == 0


# ── Missing fields ───────────────────────────────────────────────────


def test_missing_fields_reported():
    request = EnvelopeRequest()
    with pytest.raises(ValidationError) as exc_info:
        _build(request, sender_id="", password=None)
    message = str(exc_info.value)
    for name in ("message_class", "qualifier", "auth_type", "body", "sender_id", "password"):
        assert name in message


def test_empty_password_allowed():
    root = ET.fromstring(_build(_request(), password=""))
    assert root is not None


# ── Digest ───────────────────────────────────────────────────────────


def test_digest_applied_once():
    calls = []

    def digest(package):
        calls.append(package)
        return package.replace("<Payload>1</Payload>", "<Payload>2</Payload>")

    xml = _build(_request(), digest=digest)
    assert len(calls) == 1
    assert "<Payload>2</Payload>" in xml


def test_digest_empty_result_fails():
    with pytest.raises(DigestError):
        _build(_request(), digest=lambda package: "")


def test_digest_library_error_becomes_digest_error():
    def digest(package):
        raise ValidationError("nope")

    with pytest.raises(DigestError, match="nope"):
        _build(_request(), digest=digest)


def test_unexpected_digest_exception_becomes_digest_error():
    def digest(package):
        raise KeyError("IRmark")

    with pytest.raises(DigestError, match="unexpectedly") as exc_info:
        _build(_request(), digest=digest)
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_default_digest_is_identity():
    assert _build(_request()) == _build(_request(), digest=identity_digest)
