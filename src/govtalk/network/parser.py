"""
GovTalk response parsing and error classification.

Responses are parsed with defusedxml; namespaces are stripped from every
tag so that agency bodies can be navigated with plain element names.
"""

from __future__ import annotations

__all__ = [
    "EnvelopeResponse",
    "GatewayError",
    "ResponseEndpoint",
    "StatusRecord",
    "parse_envelope_response",
    "parse_status_report",
    "redact_envelope",
]

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from xml.etree.ElementTree import Element
from xml.etree.ElementTree import ParseError as _XMLParseError

import defusedxml.ElementTree as ET

from ..constants import ERROR_BUCKETS, XML_PREVIEW_LENGTH
from ..errors import ResponseError

_logger = logging.getLogger(__name__)

# Redact credentials from envelope previews in logs and error messages
_REDACT_PATTERNS = (
    (re.compile(r"<(\w+:)?Value>[^<]*</(\w+:)?Value>"), "<Value>[REDACTED]</Value>"),
    (re.compile(r"<(\w+:)?SenderID>[^<]*</(\w+:)?SenderID>"), "<SenderID>[REDACTED]</SenderID>"),
)

_STATUS_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"


def _strip_namespace(tag: str) -> str:
    """Strip XML namespace prefix from a tag name."""
    return tag.split("}")[-1] if "}" in tag else tag


def redact_envelope(xml_str: str) -> str:
    """Redact credentials from an envelope and truncate to preview length."""
    redacted = xml_str
    for pattern, replacement in _REDACT_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted[:XML_PREVIEW_LENGTH]


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ResponseEndpoint:
    """Where (and how often) to poll for the outcome of a submission."""

    url: str
    poll_interval: int | None = None


@dataclass(frozen=True)
class GatewayError:
    """One ``GovTalkErrors/Error`` entry."""

    number: str
    text: str
    location: str | None = None
    raised_by: str | None = None


@dataclass(frozen=True)
class StatusRecord:
    """One ``StatusReport/StatusRecord`` entry from a list request."""

    timestamp: datetime | None
    correlation_id: str
    transaction_id: str
    status: str


@dataclass(frozen=True)
class EnvelopeResponse:
    """Parsed Gateway reply.

    ``errors`` always contains the ``fatal``, ``recoverable``,
    ``business`` and ``warning`` buckets; an error of any other type is
    filed under its literal type name.
    """

    qualifier: str | None
    function: str | None
    correlation_id: str | None
    gateway_timestamp: datetime | None
    endpoint: ResponseEndpoint | None
    errors: dict[str, list[GatewayError]] = field(default_factory=dict)
    body: Element | None = None
    raw: str = ""

    @property
    def has_errors(self) -> bool:
        return any(self.errors.values())


# ── Parsing ──────────────────────────────────────────────────────────


def _text(elem: Element | None) -> str | None:
    if elem is None:
        return None
    return (elem.text or "").strip()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        _logger.debug("Unparseable GatewayTimestamp: %r", value)
        return None


def _parse_endpoint(elem: Element | None) -> ResponseEndpoint | None:
    if elem is None:
        return None
    interval: int | None = None
    raw_interval = elem.get("PollInterval")
    if raw_interval is not None:
        try:
            interval = int(raw_interval.strip())
        except ValueError:
            _logger.debug("Ignoring non-numeric PollInterval: %r", raw_interval)
    return ResponseEndpoint(url=(elem.text or "").strip(), poll_interval=interval)


def _classify_errors(root: Element) -> dict[str, list[GatewayError]]:
    buckets: dict[str, list[GatewayError]] = {name: [] for name in ERROR_BUCKETS}
    for error in root.findall("GovTalkDetails/GovTalkErrors/Error"):
        location = _text(error.find("Location"))
        entry = GatewayError(
            number=_text(error.find("Number")) or "",
            text=_text(error.find("Text")) or "",
            location=location or None,
            raised_by=_text(error.find("RaisedBy")) or None,
        )
        bucket = _text(error.find("Type")) or ""
        buckets.setdefault(bucket, []).append(entry)
    return buckets


def parse_envelope_response(xml_str: str) -> EnvelopeResponse:
    """
    Parse a Gateway reply envelope.

    Args:
        xml_str: Raw response body.

    Returns:
        The parsed response.

    Raises:
        ResponseError: If the reply is not well-formed XML.
    """
    try:
        root = ET.fromstring(xml_str)
    except _XMLParseError as e:
        _logger.warning("Invalid XML response: %s", e)
        safe_preview = redact_envelope(xml_str)
        raise ResponseError(f"Invalid XML response: {e}\nRaw: {safe_preview}") from e

    for elem in root.iter():
        if isinstance(elem.tag, str):
            elem.tag = _strip_namespace(elem.tag)

    details = root.find("Header/MessageDetails")
    if details is None:
        details = Element("MessageDetails")

    response = EnvelopeResponse(
        qualifier=_text(details.find("Qualifier")),
        function=_text(details.find("Function")),
        correlation_id=_text(details.find("CorrelationID")),
        gateway_timestamp=_parse_timestamp(_text(details.find("GatewayTimestamp"))),
        endpoint=_parse_endpoint(details.find("ResponseEndPoint")),
        errors=_classify_errors(root),
        body=root.find("Body"),
        raw=xml_str,
    )
    _logger.debug(
        "Parsed response: qualifier=%s, correlation=%s, errors=%d",
        response.qualifier,
        response.correlation_id,
        sum(len(v) for v in response.errors.values()),
    )
    return response


def parse_status_report(body: Element | None) -> list[StatusRecord]:
    """
    Extract the status records from a list-request response body.

    Timestamps are given by the Gateway as ``dd/mm/YYYY HH:MM:SS``; any
    other form yields a record with ``timestamp=None``.
    """
    if body is None:
        return []
    records: list[StatusRecord] = []
    for node in body.findall("StatusReport/StatusRecord"):
        raw_time = _text(node.find("TimeStamp")) or ""
        try:
            timestamp: datetime | None = datetime.strptime(raw_time, _STATUS_TIMESTAMP_FORMAT)
        except ValueError:
            timestamp = None
        records.append(
            StatusRecord(
                timestamp=timestamp,
                correlation_id=_text(node.find("CorrelationID")) or "",
                transaction_id=_text(node.find("TransactionID")) or "",
                status=_text(node.find("Status")) or "",
            )
        )
    return records
