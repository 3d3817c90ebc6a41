"""Tests for govtalk.agencies.hmrc -- IRmark and VAT returns."""

from __future__ import annotations

import base64
import hashlib
import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal

import pytest
from conftest import FakeTransport, gateway_error, gateway_reply
from lxml import etree

from govtalk.agencies.hmrc import (
    IRMARK_PLACEHOLDER,
    HmrcClient,
    HmrcVatClient,
    PendingSubmission,
    VatDeclarationResult,
    irmark_digest,
)
from govtalk.errors import DigestError

NS = {
    "g": "http://www.govtalk.gov.uk/CM/envelope",
    "v": "http://www.govtalk.gov.uk/taxation/vat/vatdeclaration/2",
}
POLL_URL = "https://secure.dev.gateway.gov.uk/poll"

ENVELOPE = """<?xml version="1.0" encoding="UTF-8"?>
<GovTalkMessage xmlns="http://www.govtalk.gov.uk/CM/envelope" \
xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <Header/>
  <Body>
<IRenvelope xmlns="urn:test"><IRheader>{marks}<Sender>Individual</Sender></IRheader>\
<Amount>10.00</Amount></IRenvelope>
  </Body>
</GovTalkMessage>
"""

_MARK = f'<IRmark Type="generic">{IRMARK_PLACEHOLDER}</IRmark>'


def _independent_irmark(package: str) -> str:
    """IRmark computed from the parsed document rather than the text."""
    root = etree.fromstring(package.encode("utf-8"))
    body = root.find("{http://www.govtalk.gov.uk/CM/envelope}Body")
    for mark in list(body.iter("{*}IRmark")):
        mark.getparent().remove(mark)
    canonical = etree.tostring(body, method="c14n")
    return base64.b64encode(hashlib.sha1(canonical).digest()).decode()


# ── irmark_digest ────────────────────────────────────────────────────


def test_irmark_replaces_placeholder():
    package = ENVELOPE.format(marks=_MARK)
    result = irmark_digest(package)
    assert IRMARK_PLACEHOLDER not in result
    mark = result.split('<IRmark Type="generic">')[1].split("</IRmark>")[0]
    assert len(base64.b64decode(mark)) == 20
    assert mark == _independent_irmark(package)


def test_irmark_deterministic():
    package = ENVELOPE.format(marks=_MARK)
    assert irmark_digest(package) == irmark_digest(package)


def test_irmark_digest_of_marked_envelope_is_stable():
    first = irmark_digest(ENVELOPE.format(marks=_MARK))
    assert irmark_digest(first) == first


@pytest.mark.parametrize("marks", ["", _MARK + _MARK])
def test_irmark_needs_exactly_one(marks):
    with pytest.raises(DigestError, match="exactly one"):
        irmark_digest(ENVELOPE.format(marks=marks))


def test_irmark_no_body():
    with pytest.raises(DigestError, match="no Body"):
        irmark_digest("<GovTalkMessage/>")


# ── HmrcClient ───────────────────────────────────────────────────────


def test_irmark_generation_toggle():
    client = HmrcClient("https://x.gov.uk/", "S", "p", transport=FakeTransport())
    assert client.irmark_header() is not None
    assert client.set_irmark_generation("yes") is False
    assert client.set_irmark_generation(False) is True
    assert client.irmark_header() is None
    package = ENVELOPE.format(marks=_MARK)
    assert client._package_digest(package) == package


def test_agent_details():
    client = HmrcClient("https://x.gov.uk/", "S", "p", transport=FakeTransport())
    assert client.agent_header() is None
    assert client.set_agent_details(
        "Acme Accountants",
        {"line": ["1 High St", "Leeds"], "postcode": "LS1 1AA"},
        {"name": {"title": "Ms", "forename": "Jo", "surname": "Bloggs"}, "email": "jo@a.com"},
        "AG123",
    )
    agent = client.agent_header()
    assert agent.findtext("AgentID") == "AG123"
    assert [line.text for line in agent.findall("Address/Line")] == ["1 High St", "Leeds"]
    assert agent.findtext("Address/Country") == "England"
    assert agent.findtext("Contact/Name/Sur") == "Bloggs"
    assert agent.findtext("Contact/Email") == "jo@a.com"


def test_agent_details_rejected():
    client = HmrcClient("https://x.gov.uk/", "S", "p", transport=FakeTransport())
    assert client.set_agent_details("Bad<Co>", {"line": ["x"], "postcode": "y"}) is False
    assert client.set_agent_details("Good Co", {"postcode": "y"}) is False
    assert client.error_count() == 2


# ── VAT declaration ──────────────────────────────────────────────────


def _vat_client(*replies) -> tuple[HmrcVatClient, FakeTransport]:
    transport = FakeTransport(*replies)
    return HmrcVatClient("S", "p", service="vsips", transport=transport), transport


def _declare(client: HmrcVatClient, **overrides):
    args = {
        "vat_number": "GB 999 9000 01",
        "return_period": "2024-03",
        "sender_capacity": "Individual",
        "vat_output": "100.50",
        "vat_ec_acquisitions": 0,
        "vat_reclaimed_input": "20.25",
        "net_output": "502.99",
        "net_input": 101.6,
        "net_ec_supply": 0,
        "net_ec_acquisitions": 0,
    }
    args.update(overrides)
    return client.declaration_request(**args)


def test_declaration_request_acknowledged():
    ack = gateway_reply(
        "acknowledgement", correlation_id="ABC123", endpoint=POLL_URL, poll_interval=10
    )
    client, transport = _vat_client(ack)
    pending = _declare(client)
    assert pending == PendingSubmission(endpoint=POLL_URL, interval=10, correlation_id="ABC123")

    root = ET.fromstring(transport.last_envelope)
    details = root.find("g:Header/g:MessageDetails", NS)
    assert details.findtext("g:Class", namespaces=NS) == "HMRC-VAT-DEC"
    assert details.findtext("g:GatewayTest", namespaces=NS) == "1"
    key = root.find("g:GovTalkDetails/g:Keys/g:Key", NS)
    assert (key.get("Type"), key.text) == ("VATRegNo", "GB999900001")

    declaration = root.find("g:Body/v:IRenvelope/v:VATDeclarationRequest", NS)
    assert declaration.findtext("v:TotalVAT", namespaces=NS) == "100.50"
    assert declaration.findtext("v:NetVAT", namespaces=NS) == "80.25"
    assert declaration.findtext("v:NetSalesAndOutputs", namespaces=NS) == "502"
    assert declaration.findtext("v:NetPurchasesAndInputs", namespaces=NS) == "101"

    mark = root.findtext("g:Body/v:IRenvelope/v:IRheader/v:IRmark", namespaces=NS)
    assert mark != IRMARK_PLACEHOLDER
    assert mark == _independent_irmark(transport.last_envelope)


def test_declaration_vat_route_before_library_route():
    client, transport = _vat_client(gateway_reply("acknowledgement", endpoint=POLL_URL))
    _declare(client)
    root = ET.fromstring(transport.last_envelope)
    products = [
        r.findtext("g:Channel/g:Product", namespaces=NS)
        for r in root.findall("g:GovTalkDetails/g:ChannelRouting", NS)
    ]
    assert products == ["govtalk-python HMRC VAT extension", "govtalk-python"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"vat_number": "12345"},
        {"return_period": "03-2024"},
        {"sender_capacity": "Alien"},
        {"vat_output": "lots"},
        {"net_vat": "-1"},
    ],
)
def test_declaration_rejected_locally(overrides):
    client, transport = _vat_client()
    assert _declare(client, **overrides) is None
    assert transport.posts == []
    assert client.get_last_error().function == "declaration_request"


def test_declaration_gateway_error():
    client, _ = _vat_client(gateway_reply("error", errors=gateway_error("fatal")))
    assert _declare(client) is None


# ── VAT poll ─────────────────────────────────────────────────────────

SUCCESS_BODY = """
<SuccessResponse xmlns="http://www.inlandrevenue.gov.uk/SuccessResponse">
  <IRmarkReceipt><Message code="0000">IRmark receipt text</Message></IRmarkReceipt>
  <Message code="0000">Thank you for your VAT return</Message>
  <AcceptedTime>2024-04-07T12:00:00</AcceptedTime>
  <ResponseData>
    <VATDeclarationResponse>
      <Header>
        <VATPeriod>
          <PeriodId>2024-03</PeriodId>
          <PeriodStartDate>2024-01-01</PeriodStartDate>
          <PeriodEndDate>2024-03-31</PeriodEndDate>
        </VATPeriod>
      </Header>
      <Body>
        <PaymentDueDate>2024-05-07</PaymentDueDate>
        <PaymentNotification>
          <Narrative>Pay by direct debit</Narrative>
          <NetVAT>80.25</NetVAT>
          <DirectDebitPaymentStatus><CollectionDate>2024-05-10</CollectionDate>
          </DirectDebitPaymentStatus>
        </PaymentNotification>
      </Body>
    </VATDeclarationResponse>
  </ResponseData>
</SuccessResponse>
"""


def test_poll_pending():
    ack = gateway_reply("acknowledgement", correlation_id="ABC", endpoint=POLL_URL)
    client, transport = _vat_client(ack)
    pending = client.declaration_response_poll("ABC", POLL_URL)
    assert isinstance(pending, PendingSubmission)
    assert transport.posts[0][0] == POLL_URL


def test_poll_response_parsed():
    client, _ = _vat_client(gateway_reply("response", correlation_id="ABC", body=SUCCESS_BODY))
    result = client.declaration_response_poll("ABC", POLL_URL)
    assert isinstance(result, VatDeclarationResult)
    assert result.messages == ["Thank you for your VAT return"]
    assert result.irmark == "IRmark receipt text"
    assert result.period.id == "2024-03"
    assert result.period.end == date(2024, 3, 31)
    assert result.payment_due == date(2024, 5, 7)
    assert result.payment.method == "directdebit"
    assert result.payment.additional == date(2024, 5, 10)
    assert Decimal(result.payment.net_vat) == Decimal("80.25")


def test_poll_tidies_gateway():
    client, transport = _vat_client(
        gateway_reply("response", correlation_id="ABC", body=SUCCESS_BODY),
        gateway_reply("response", function="delete", correlation_id="ABC"),
    )
    client.set_gateway_tidy(True)
    client.declaration_response_poll("ABC", POLL_URL)
    assert len(transport.posts) == 2
    delete = ET.fromstring(transport.last_envelope)
    function = delete.findtext("g:Header/g:MessageDetails/g:Function", namespaces=NS)
    assert function == "delete"


def test_poll_error():
    client, _ = _vat_client(gateway_reply("error", errors=gateway_error("business")))
    assert client.declaration_response_poll("ABC", POLL_URL) is None


def test_poll_envelope_not_digested():
    ack = gateway_reply("acknowledgement", correlation_id="ABC", endpoint=POLL_URL)
    client, transport = _vat_client(ack)
    assert client.declaration_response_poll("ABC", POLL_URL) is not None
    assert "IRmark" not in transport.last_envelope
