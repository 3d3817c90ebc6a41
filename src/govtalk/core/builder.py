"""
GovTalk envelope builder.

Serializes an :class:`~govtalk.core.request.EnvelopeRequest` into a
GovTalk 2.0 envelope.  Element order follows envelope-v2-0.xsd and must
not change.  All user-supplied text is XML-escaped; the body fragment is
inserted raw.
"""

from __future__ import annotations

__all__ = ["Digest", "build_envelope", "default_channel_route", "identity_digest"]

import logging
from collections.abc import Callable

from ..constants import (
    ENVELOPE_NAMESPACE,
    ENVELOPE_SCHEMA,
    ENVELOPE_VERSION,
    PRODUCT_NAME,
    PRODUCT_URI,
    XSI_NAMESPACE,
    __version__,
)
from ..errors import DigestError, GovTalkError, ValidationError
from .auth import Authenticator, AuthToken, resolve_authenticator
from .body import xml_escape
from .request import ChannelRoute, EnvelopeRequest, format_timestamp

_logger = logging.getLogger(__name__)

# Post-serialization hook: full envelope in, (possibly rewritten) envelope out
Digest = Callable[[str], str]


def identity_digest(package: str) -> str:
    """Default digest: return the package unaltered."""
    return package


def default_channel_route() -> ChannelRoute:
    """The trailing route identifying this library to the Gateway."""
    return ChannelRoute(
        uri=PRODUCT_URI,
        product=PRODUCT_NAME,
        version=__version__,
        timestamp=format_timestamp(),
    )


def _element(name: str, text: str, indent: str) -> str:
    return f"{indent}<{name}>{xml_escape(text)}</{name}>"


def _message_details(request: EnvelopeRequest, transaction_id: str) -> list[str]:
    ind = "      "
    lines = ["    <MessageDetails>"]
    lines.append(_element("Class", request.message_class or "", ind))
    lines.append(_element("Qualifier", request.qualifier or "", ind))
    if request.function is not None:
        lines.append(_element("Function", request.function, ind))
    lines.append(_element("TransactionID", transaction_id, ind))
    lines.append(_element("CorrelationID", request.correlation_id, ind))
    lines.append(_element("Transformation", request.transformation, ind))
    lines.append(_element("GatewayTest", "1" if request.test_flag else "0", ind))
    lines.append("    </MessageDetails>")
    return lines


def _sender_details(request: EnvelopeRequest, sender_id: str, token: AuthToken) -> list[str]:
    ind = "          "
    lines = [
        "    <SenderDetails>",
        "      <IDAuthentication>",
        _element("SenderID", sender_id, "        "),
        "        <Authentication>",
        _element("Method", token.method, ind),
    ]
    if token.role is not None:
        lines.append(_element("Role", token.role, ind))
    lines.append(_element("Value", token.value, ind))
    lines.append("        </Authentication>")
    lines.append("      </IDAuthentication>")
    if request.sender_email is not None:
        lines.append(_element("EmailAddress", request.sender_email, "      "))
    lines.append("    </SenderDetails>")
    return lines


def _channel_routing(route: ChannelRoute) -> list[str]:
    lines = ["    <ChannelRouting>", "      <Channel>"]
    lines.append(_element("URI", route.uri, "        "))
    if route.product is not None:
        lines.append(_element("Product", route.product, "        "))
    if route.version is not None:
        lines.append(_element("Version", route.version, "        "))
    lines.append("      </Channel>")
    for id_type, id_value in route.ids:
        lines.append(f'      <ID type="{xml_escape(id_type)}">{xml_escape(id_value)}</ID>')
    lines.append(_element("Timestamp", route.timestamp, "      "))
    lines.append("    </ChannelRouting>")
    return lines


def _govtalk_details(request: EnvelopeRequest, self_route: ChannelRoute) -> list[str]:
    lines = ["  <GovTalkDetails>"]
    if request.keys:
        lines.append("    <Keys>")
        for key in request.keys:
            lines.append(f'      <Key Type="{xml_escape(key.type)}">{xml_escape(key.value)}</Key>')
        lines.append("    </Keys>")
    if request.target_organisations:
        lines.append("    <TargetDetails>")
        for organisation in request.target_organisations:
            lines.append(_element("Organisation", organisation, "      "))
        lines.append("    </TargetDetails>")

    routes = [r for r in request.channel_routes if r.identity != self_route.identity]
    routes.append(self_route)
    for route in routes:
        lines.extend(_channel_routing(route))
    lines.append("  </GovTalkDetails>")
    return lines


def build_envelope(
    request: EnvelopeRequest,
    *,
    sender_id: str | None,
    password: str | None,
    transaction_id: str,
    authenticator: Authenticator | None = None,
    digest: Digest | None = None,
    self_route: ChannelRoute | None = None,
) -> str:
    """
    Package the request into a GovTalk envelope.

    The request is only read, never modified.

    Args:
        request: Envelope state.
        sender_id: Gateway sender ID.
        password: Gateway password.
        transaction_id: Freshly generated transaction ID for this envelope.
        authenticator: Strategy producing the authentication token.
            Defaults to the one matching ``request.auth_type``.
        digest: Hook run once over the finished serialization; defaults
            to :func:`identity_digest`.  Any exception it raises is
            reported as :class:`DigestError`.
        self_route: Trailing channel route; defaults to this library.

    Returns:
        The serialized (and digested) envelope.

    Raises:
        ValidationError: If a required field is missing.
        AuthenticationError: If no authentication token can be produced.
        DigestError: If the digest hook fails.
    """
    missing = request.missing_fields()
    if not sender_id:
        missing.append("sender_id")
    if password is None:
        missing.append("password")
    if missing:
        raise ValidationError(f"Cannot build envelope, missing: {', '.join(missing)}")

    if authenticator is None:
        authenticator = resolve_authenticator(request.auth_type or "")
    token = authenticator.generate(sender_id or "", password or "", transaction_id)

    schema_location = f"{ENVELOPE_NAMESPACE} {ENVELOPE_SCHEMA}"
    if request.schema_location is not None:
        schema_location += f" {request.schema_location}"

    body = (request.body.serialize() if request.body is not None else "").strip()

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<GovTalkMessage xmlns="{ENVELOPE_NAMESPACE}" xmlns:xsi="{XSI_NAMESPACE}"'
        f' xsi:schemaLocation="{xml_escape(schema_location)}">',
        f"  <EnvelopeVersion>{ENVELOPE_VERSION}</EnvelopeVersion>",
        "  <Header>",
        *_message_details(request, transaction_id),
        *_sender_details(request, sender_id or "", token),
        "  </Header>",
        *_govtalk_details(request, self_route or default_channel_route()),
        f"  <Body>\n{body}\n  </Body>",
        "</GovTalkMessage>",
    ]
    package = "\n".join(lines) + "\n"
    _logger.debug(
        "Built envelope: class=%s, qualifier=%s, transaction=%s, %d bytes",
        request.message_class,
        request.qualifier,
        transaction_id,
        len(package),
    )

    if digest is None:
        digest = identity_digest
    try:
        digested = digest(package)
    except DigestError:
        raise
    except GovTalkError as e:
        raise DigestError(f"Digest failed: {e}") from e
    except Exception as e:
        _logger.exception("Unexpected error in digest hook")
        raise DigestError(f"Digest failed unexpectedly: {e}") from e
    if not isinstance(digested, str) or not digested:
        raise DigestError("Digest returned no package")
    return digested
