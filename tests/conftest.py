"""Shared test fixtures for the govtalk test suite."""

from __future__ import annotations

import pytest

ENVELOPE_NS = "http://www.govtalk.gov.uk/CM/envelope"


def gateway_reply(
    qualifier: str = "response",
    *,
    function: str = "submit",
    correlation_id: str = "A1B2C3D4",
    endpoint: str | None = None,
    poll_interval: int | None = None,
    errors: str = "",
    body: str = "",
    timestamp: str = "2024-05-01T10:15:30.123",
) -> bytes:
    """Render a Gateway reply envelope."""
    endpoint_xml = ""
    if endpoint is not None:
        interval = f' PollInterval="{poll_interval}"' if poll_interval is not None else ""
        endpoint_xml = f"<ResponseEndPoint{interval}>{endpoint}</ResponseEndPoint>"
    error_xml = f"<GovTalkErrors>{errors}</GovTalkErrors>" if errors else ""
    return f"""<?xml version="1.0"?>
<GovTalkMessage xmlns="{ENVELOPE_NS}">
  <EnvelopeVersion>2.0</EnvelopeVersion>
  <Header>
    <MessageDetails>
      <Class>HMRC-VAT-DEC</Class>
      <Qualifier>{qualifier}</Qualifier>
      <Function>{function}</Function>
      <TransactionID>1</TransactionID>
      <CorrelationID>{correlation_id}</CorrelationID>
      {endpoint_xml}
      <GatewayTimestamp>{timestamp}</GatewayTimestamp>
    </MessageDetails>
    <SenderDetails/>
  </Header>
  <GovTalkDetails><Keys/>{error_xml}</GovTalkDetails>
  <Body>{body}</Body>
</GovTalkMessage>
""".encode()


def gateway_error(
    error_type: str, number: str = "1046", text: str = "Authentication failure", location: str = ""
) -> str:
    location_xml = f"<Location>{location}</Location>" if location else ""
    return (
        f"<Error><RaisedBy>Gateway</RaisedBy><Number>{number}</Number>"
        f"<Type>{error_type}</Type><Text>{text}</Text>{location_xml}</Error>"
    )


class FakeTransport:
    """GatewayTransport that records posts and replays queued replies."""

    def __init__(self, *replies: bytes | Exception) -> None:
        self.replies = list(replies)
        self.posts: list[tuple[str, bytes, int]] = []

    def post(self, url: str, body: bytes, timeout: int) -> bytes:
        self.posts.append((url, body, timeout))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def last_envelope(self) -> str:
        return self.posts[-1][1].decode("utf-8")


@pytest.fixture
def fake_transport():
    return FakeTransport()
