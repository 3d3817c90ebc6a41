"""
HMRC Gateway extensions.

HMRC submissions carry an IRmark: a SHA-1 digest over the canonicalized
envelope ``Body`` (with the IRmark element itself removed), embedded in
the body's ``IRheader``.  :func:`irmark_digest` computes it as the
client's digest hook, so the mark always covers the final serialized
body.
"""

from __future__ import annotations

__all__ = [
    "HmrcClient",
    "HmrcVatClient",
    "PendingSubmission",
    "VatDeclarationResult",
    "VatPayment",
    "VatPeriod",
    "irmark_digest",
]

import base64
import hashlib
import logging
import math
import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from lxml import etree

from ..client import GovTalkClient
from ..constants import __version__
from ..core.body import ElementBody
from ..errors import DigestError, GovTalkError, ValidationError

_logger = logging.getLogger(__name__)

IRMARK_PLACEHOLDER = "IRmark+Token"

_BODY_PATTERN = re.compile(r"<Body>(.*?)</Body>", re.DOTALL)
_IRMARK_PATTERN = re.compile(r'<(vat:)?IRmark Type="generic">[A-Za-z0-9/+=]*</(vat:)?IRmark>')
_ROOT_NAMESPACES_PATTERN = re.compile(r"<GovTalkMessage\b([^>]*)>")
_XMLNS_PATTERN = re.compile(r'xmlns(?::[\w.-]+)?="[^"]*"')

# Characters HMRC accepts in agent company names and references
_AGENT_TEXT_PATTERN = re.compile(r"[A-Za-z0-9 &'()*,\-./]*")


# ── IRmark ───────────────────────────────────────────────────────────


def irmark_digest(package: str) -> str:
    """
    Compute the IRmark of an envelope and substitute it for the placeholder.

    Args:
        package: Serialized envelope containing exactly one
            ``<IRmark Type="generic">`` element in its body.

    Returns:
        The envelope with ``IRmark+Token`` replaced by the mark.

    Raises:
        DigestError: If the body or a single IRmark element cannot be found,
            or the body is not well-formed.
    """
    body_match = _BODY_PATTERN.search(package)
    if body_match is None:
        raise DigestError("Envelope has no Body element")

    body, count = _IRMARK_PATTERN.subn("", body_match.group(1))
    if count != 1:
        raise DigestError(f"Expected exactly one generic IRmark in Body, found {count}")

    # The Body inherits the namespace declarations of the envelope root
    root_match = _ROOT_NAMESPACES_PATTERN.search(package)
    declarations = _XMLNS_PATTERN.findall(root_match.group(1)) if root_match else []
    opening = " ".join(["<Body", *declarations])
    wrapped = f"{opening}>{body}</Body>"

    try:
        element = etree.fromstring(wrapped.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise DigestError(f"Body is not well-formed XML: {e}") from e
    canonical = etree.tostring(element, method="c14n")
    digest = hashlib.sha1(canonical).digest()  # noqa: S324 -- IRmark is defined as SHA-1
    mark = base64.b64encode(digest).decode("ascii")
    _logger.debug("IRmark computed over %d canonical bytes", len(canonical))
    return package.replace(IRMARK_PLACEHOLDER, mark, 1)


# ── HMRC base client ─────────────────────────────────────────────────


class HmrcClient(GovTalkClient):
    """
    GovTalk client for the HMRC Gateway.

    Adds IRmark generation (on by default), optional tidying of completed
    submissions, and the ``Agent`` header used in ``IRheader``.
    """

    def __init__(self, server_url: str, sender_id: str, password: str, **kwargs: Any) -> None:
        kwargs.setdefault("digest", self._package_digest)
        super().__init__(server_url, sender_id, password, **kwargs)
        self.generate_irmark = True
        self.tidy_gateway = False
        self._agent: dict[str, Any] = {}

    def _package_digest(self, package: str) -> str:
        # Poll, delete and list envelopes have empty bodies and carry no IRmark
        if not self.generate_irmark or IRMARK_PLACEHOLDER not in package:
            return package
        return irmark_digest(package)

    def set_irmark_generation(self, flag: bool) -> bool:
        if not isinstance(flag, bool):
            self._log_error(
                "validation", f"IRmark flag must be a bool: {flag!r}", "set_irmark_generation"
            )
            return False
        self.generate_irmark = flag
        return True

    def set_gateway_tidy(self, flag: bool) -> bool:
        """Delete responses from the Gateway once they have been collected."""
        if not isinstance(flag, bool):
            self._log_error("validation", f"Tidy flag must be a bool: {flag!r}", "set_gateway_tidy")
            return False
        self.tidy_gateway = flag
        return True

    def set_agent_details(
        self,
        company: str,
        address: Mapping[str, Any],
        contact: Mapping[str, Any] | None = None,
        reference: str | None = None,
    ) -> bool:
        """
        Set the agent submitting on behalf of the taxpayer.

        Args:
            company: Agent company name.
            address: ``line`` (list of str), ``postcode``, and optionally
                ``country`` (defaults to England).
            contact: ``name`` (``title``, ``forename``, ``surname``) and
                optionally ``email``, ``telephone``, ``fax``.
            reference: Agent ID.

        Returns:
            True if the details were stored.
        """
        if not isinstance(company, str) or not _AGENT_TEXT_PATTERN.fullmatch(company):
            self._log_error(
                "validation", f"Invalid agent company: {company!r}", "set_agent_details"
            )
            return False
        if not address.get("line") or "postcode" not in address:
            self._log_error(
                "validation", "Agent address needs lines and a postcode", "set_agent_details"
            )
            return False
        agent: dict[str, Any] = {"company": company, "address": dict(address)}
        agent["address"].setdefault("country", "England")
        if contact is not None:
            agent["contact"] = contact
        if reference is not None and _AGENT_TEXT_PATTERN.fullmatch(reference):
            agent["reference"] = reference
        self._agent = agent
        return True

    def agent_header(self) -> ET.Element | None:
        """The ``Agent`` element for an ``IRheader``, or None if no agent is set."""
        if not self._agent:
            return None
        agent = ET.Element("Agent")
        if "reference" in self._agent:
            ET.SubElement(agent, "AgentID").text = self._agent["reference"]
        ET.SubElement(agent, "Company").text = self._agent["company"]
        address = ET.SubElement(agent, "Address")
        for line in self._agent["address"]["line"]:
            ET.SubElement(address, "Line").text = line
        ET.SubElement(address, "PostCode").text = self._agent["address"]["postcode"]
        ET.SubElement(address, "Country").text = self._agent["address"]["country"]
        contact_details = self._agent.get("contact")
        if contact_details:
            contact = ET.SubElement(agent, "Contact")
            name = ET.SubElement(contact, "Name")
            ET.SubElement(name, "Ttl").text = contact_details["name"]["title"]
            ET.SubElement(name, "Fore").text = contact_details["name"]["forename"]
            ET.SubElement(name, "Sur").text = contact_details["name"]["surname"]
            for key, tag in (("email", "Email"), ("telephone", "Telephone"), ("fax", "Fax")):
                if key in contact_details:
                    ET.SubElement(contact, tag).text = contact_details[key]
        return agent

    def irmark_header(self) -> ET.Element | None:
        """The IRmark placeholder element, or None if generation is off."""
        if not self.generate_irmark:
            return None
        irmark = ET.Element("IRmark", Type="generic")
        irmark.text = IRMARK_PLACEHOLDER
        return irmark


# ── VAT ──────────────────────────────────────────────────────────────

VAT_NAMESPACE = "http://www.govtalk.gov.uk/taxation/vat/vatdeclaration/2"
VAT_SCHEMA = (
    "http://www.govtalk.gov.uk/taxation/vat/vatdeclaration/2/VATDeclarationRequest-v2-1.xsd"
)
VAT_MESSAGE_CLASS = "HMRC-VAT-DEC"

VAT_SERVICES = {
    "live": ("https://secure.gateway.gov.uk/submission", False),
    "vsips": ("https://secure.dev.gateway.gov.uk/submission", True),
    "tpvs": ("https://www.tpvs.hmrc.gov.uk/HMRC/VATDEC", True),
}

SENDER_CAPACITIES = frozenset(
    {
        "Individual",
        "Company",
        "Agent",
        "Bureau",
        "Partnership",
        "Trust",
        "Employer",
        "Government",
        "Acting in Capacity",
        "Other",
    }
)

_VAT_NUMBER_PATTERN = re.compile(r"(GB)?(\d{9,12})")
_RETURN_PERIOD_PATTERN = re.compile(r"\d{4}-\d{2}")

_VAT_ROUTE = (
    "urn:govtalk:python-client:hmrc-vat",
    "govtalk-python HMRC VAT extension",
    __version__,
)


@dataclass(frozen=True)
class PendingSubmission:
    """An acknowledged submission: poll ``endpoint`` after ``interval`` seconds."""

    endpoint: str | None
    interval: int | None
    correlation_id: str | None


@dataclass(frozen=True)
class VatPeriod:
    id: str
    start: date | None
    end: date | None


@dataclass(frozen=True)
class VatPayment:
    """How the net VAT will be settled.

    ``method`` is one of ``nilpayment``, ``repayment``, ``directdebit``,
    ``payment`` or None; ``additional`` holds the collection date (direct
    debit) or instruction status (payment).
    """

    narrative: str
    net_vat: str
    method: str | None = None
    additional: date | str | None = None


@dataclass(frozen=True)
class VatDeclarationResult:
    """A completed VAT return as reported by HMRC."""

    messages: list[str] = field(default_factory=list)
    irmark: str | None = None
    accept_time: datetime | None = None
    period: VatPeriod | None = None
    payment_due: date | None = None
    payment: VatPayment | None = None


def _money(value: Any, name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(f"{name} must be numeric: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"{name} must be finite: {value!r}")
    return amount


def _child_text(parent: ET.Element | None, path: str) -> str | None:
    if parent is None:
        return None
    node = parent.find(path)
    return (node.text or "").strip() if node is not None else None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class HmrcVatClient(HmrcClient):
    """
    VAT return submission (``HMRC-VAT-DEC``).

    Args:
        sender_id: Gateway sender ID.
        password: Gateway password.
        service: ``live``, ``vsips`` (developer test) or ``tpvs``
            (third-party validation).  Test services set the test flag.
    """

    def __init__(self, sender_id: str, password: str, service: str = "live", **kwargs: Any) -> None:
        url, test = VAT_SERVICES.get(service, VAT_SERVICES["live"])
        super().__init__(url, sender_id, password, **kwargs)
        self.set_test_flag(test)
        self.set_schema_location(VAT_SCHEMA, False)
        self.set_message_authentication("clear")

    def _pending(self) -> PendingSubmission:
        endpoint = self.get_response_endpoint()
        return PendingSubmission(
            endpoint=endpoint.url if endpoint else None,
            interval=endpoint.poll_interval if endpoint else None,
            correlation_id=self.get_response_correlation_id(),
        )

    def _declaration_body(
        self,
        vat_number: str,
        return_period: str,
        sender_capacity: str,
        amounts: dict[str, Decimal],
        final_return: bool,
    ) -> ET.Element:
        envelope = ET.Element("IRenvelope", xmlns=VAT_NAMESPACE)
        header = ET.SubElement(envelope, "IRheader")
        keys = ET.SubElement(header, "Keys")
        ET.SubElement(keys, "Key", Type="VATRegNo").text = vat_number
        ET.SubElement(header, "PeriodID").text = return_period
        agent = self.agent_header()
        if agent is not None:
            header.append(agent)
        ET.SubElement(header, "DefaultCurrency").text = "GBP"
        irmark = self.irmark_header()
        if irmark is not None:
            header.append(irmark)
        ET.SubElement(header, "Sender").text = sender_capacity

        declaration = ET.SubElement(envelope, "VATDeclarationRequest")
        if final_return:
            declaration.set("finalReturn", "yes")
        for tag in (
            "VATDueOnOutputs",
            "VATDueOnECAcquisitions",
            "TotalVAT",
            "VATReclaimedOnInputs",
            "NetVAT",
        ):
            ET.SubElement(declaration, tag).text = f"{amounts[tag]:.2f}"
        for tag in (
            "NetSalesAndOutputs",
            "NetPurchasesAndInputs",
            "NetECSupplies",
            "NetECAcquisitions",
        ):
            ET.SubElement(declaration, tag).text = str(math.floor(amounts[tag]))
        return envelope

    def declaration_request(
        self,
        vat_number: str,
        return_period: str,
        sender_capacity: str,
        vat_output: Any,
        vat_ec_acquisitions: Any,
        vat_reclaimed_input: Any,
        net_output: Any,
        net_input: Any,
        net_ec_supply: Any,
        net_ec_acquisitions: Any,
        total_vat: Any = None,
        net_vat: Any = None,
        final_return: bool = False,
    ) -> PendingSubmission | None:
        """
        Submit a VAT return.

        Total and net VAT are derived from the other amounts when omitted.

        Returns:
            Where and when to poll for the outcome, or None if the return
            was rejected locally, not delivered, or refused by the Gateway.
        """
        try:
            vat_number = vat_number.replace(" ", "").strip()
            if not _VAT_NUMBER_PATTERN.fullmatch(vat_number):
                raise ValidationError(f"Invalid VAT registration number: {vat_number!r}")
            if not _RETURN_PERIOD_PATTERN.fullmatch(return_period):
                raise ValidationError(
                    f"Invalid return period (expected YYYY-MM): {return_period!r}"
                )
            if sender_capacity not in SENDER_CAPACITIES:
                raise ValidationError(f"Invalid sender capacity: {sender_capacity!r}")
            amounts = {
                "VATDueOnOutputs": _money(vat_output, "vat_output"),
                "VATDueOnECAcquisitions": _money(vat_ec_acquisitions, "vat_ec_acquisitions"),
                "VATReclaimedOnInputs": _money(vat_reclaimed_input, "vat_reclaimed_input"),
                "NetSalesAndOutputs": _money(net_output, "net_output"),
                "NetPurchasesAndInputs": _money(net_input, "net_input"),
                "NetECSupplies": _money(net_ec_supply, "net_ec_supply"),
                "NetECAcquisitions": _money(net_ec_acquisitions, "net_ec_acquisitions"),
            }
            amounts["TotalVAT"] = (
                _money(total_vat, "total_vat")
                if total_vat is not None
                else amounts["VATDueOnOutputs"] + amounts["VATDueOnECAcquisitions"]
            )
            amounts["NetVAT"] = (
                _money(net_vat, "net_vat")
                if net_vat is not None
                else abs(amounts["TotalVAT"] - amounts["VATReclaimedOnInputs"])
            )
            if amounts["NetVAT"] < 0:
                raise ValidationError("Net VAT cannot be negative")
        except GovTalkError as e:
            self._log_error(e.kind, str(e), "declaration_request")
            return None

        self.set_message_class(VAT_MESSAGE_CLASS)
        self.set_message_qualifier("request")
        self.set_message_function("submit")
        self.set_message_correlation_id("")
        self.reset_message_keys()
        self.add_message_key("VATRegNo", vat_number)
        body = self._declaration_body(
            vat_number, return_period, sender_capacity, amounts, final_return
        )
        self.request.body = ElementBody(body)
        self.add_channel_route(*_VAT_ROUTE)

        if not self.send_message() or self.response_has_errors():
            return None
        return self._pending()

    def declaration_response_poll(
        self, correlation_id: str | None = None, poll_url: str | None = None
    ) -> VatDeclarationResult | PendingSubmission | None:
        """
        Poll for the outcome of a VAT return.

        Returns:
            The declaration result once HMRC has processed the return; a
            new :class:`PendingSubmission` while it is still in progress;
            None on failure or Gateway errors.
        """
        self.set_message_class(VAT_MESSAGE_CLASS)
        self.reset_message_keys()
        if not self.send_poll_request(correlation_id, poll_url) or self.response_has_errors():
            return None

        qualifier = self.get_response_qualifier()
        if qualifier == "acknowledgement":
            return self._pending()
        if qualifier != "response":
            return None

        result = self._parse_declaration_response(self.get_response_body())
        if self.tidy_gateway:
            self.send_delete_request()
        return result

    @staticmethod
    def _parse_declaration_response(body: ET.Element | None) -> VatDeclarationResult:
        success = body.find("SuccessResponse") if body is not None else None
        if success is None:
            return VatDeclarationResult()

        declaration = success.find("ResponseData/VATDeclarationResponse")
        period_node = declaration.find("Header/VATPeriod") if declaration is not None else None
        period = None
        if period_node is not None:
            period = VatPeriod(
                id=_child_text(period_node, "PeriodId") or "",
                start=_parse_date(_child_text(period_node, "PeriodStartDate")),
                end=_parse_date(_child_text(period_node, "PeriodEndDate")),
            )

        notification = (
            declaration.find("Body/PaymentNotification") if declaration is not None else None
        )
        payment = None
        if notification is not None:
            method: str | None = None
            additional: date | str | None = None
            if notification.find("NilPaymentIndicator") is not None:
                method = "nilpayment"
            elif notification.find("RepaymentIndicator") is not None:
                method = "repayment"
            elif notification.find("DirectDebitPaymentStatus") is not None:
                method = "directdebit"
                additional = _parse_date(
                    _child_text(notification, "DirectDebitPaymentStatus/CollectionDate")
                )
            elif notification.find("PaymentRequest") is not None:
                method = "payment"
                additional = _child_text(
                    notification, "PaymentRequest/DirectDebitInstructionStatus"
                )
            payment = VatPayment(
                narrative=_child_text(notification, "Narrative") or "",
                net_vat=_child_text(notification, "NetVAT") or "",
                method=method,
                additional=additional,
            )

        return VatDeclarationResult(
            messages=[(m.text or "").strip() for m in success.findall("Message")],
            irmark=_child_text(success, "IRmarkReceipt/Message"),
            accept_time=_parse_datetime(_child_text(success, "AcceptedTime")),
            period=period,
            payment_due=_parse_date(_child_text(declaration, "Body/PaymentDueDate")),
            payment=payment,
        )
