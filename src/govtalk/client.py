"""
GovTalk client: envelope state, send/poll cycle, and last-response cache.

A :class:`GovTalkClient` holds the Gateway configuration (server URL,
credentials, transport) together with one :class:`EnvelopeRequest` and
the single most recent response.  Setters validate and report failure as
``False`` plus an entry in the client's error log; sends report a
:class:`SendResult` carrying the failure kind.  Errors reported by the
Gateway inside a well-formed reply are not failures: inspect them with
:meth:`GovTalkClient.response_has_errors` and
:meth:`GovTalkClient.get_response_errors`.

One exchange at a time per client.  Instances share no mutable state,
so concurrent transactions need one client each.
"""

from __future__ import annotations

__all__ = ["ErrorLogEntry", "ExchangeState", "GovTalkClient", "SendResult"]

import dataclasses
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlparse

from .constants import DEFAULT_TIMEOUT_HTTP_POST
from .core.auth import TokenDeriver, resolve_authenticator
from .core.body import as_body
from .core.builder import Digest, build_envelope
from .core.request import ChannelRoute, EnvelopeRequest
from .core.transaction import new_transaction_id
from .errors import GovTalkError, SchemaError, TransportError, ValidationError
from .network.http_transport import HttpGatewayTransport
from .network.parser import (
    EnvelopeResponse,
    GatewayError,
    ResponseEndpoint,
    StatusRecord,
    parse_envelope_response,
    parse_status_report,
)
from .network.schema import assert_valid, validate_xml

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

    from .network.protocol import GatewayTransport

_T = TypeVar("_T")

_logger = logging.getLogger(__name__)

# Injected restriction on Class / Function values; returns True to accept
FieldValidator = Callable[[str], bool]


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ErrorLogEntry:
    """One locally-raised failure."""

    timestamp: datetime
    code: str
    message: str | None = None
    function: str | None = None


@dataclass(frozen=True)
class SendResult:
    """Outcome of one exchange.  Truthy exactly when the exchange succeeded.

    ``failure`` is one of ``validation``, ``authentication``, ``digest``,
    ``transport``, ``schema``, ``response``, or None on success.
    """

    ok: bool
    failure: str | None = None
    message: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class ExchangeState(enum.Enum):
    """Where the last exchange left the client."""

    IDLE = "idle"
    PARSED = "parsed"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    ERRORED = "errored"


# ── Client ───────────────────────────────────────────────────────────


class GovTalkClient:
    """
    Builds, sends and interprets GovTalk envelopes.

    Args:
        server_url: Gateway submission URL.
        sender_id: Gateway sender ID.
        password: Gateway password.
        transport: Delivery mechanism; defaults to HTTPS POST.
        alternative_auth: Token derivation used when the authentication
            type is ``alternative``.
        digest: Hook run once over every finished envelope.
        class_validator: Extra acceptance test for message classes.
        function_validator: Extra acceptance test for message functions.
        timeout: Transport timeout in seconds.
        channel_route: Trailing self-identifying route; defaults to this
            library.
    """

    def __init__(
        self,
        server_url: str,
        sender_id: str,
        password: str,
        *,
        transport: GatewayTransport | None = None,
        alternative_auth: TokenDeriver | None = None,
        digest: Digest | None = None,
        class_validator: FieldValidator | None = None,
        function_validator: FieldValidator | None = None,
        timeout: int = DEFAULT_TIMEOUT_HTTP_POST,
        channel_route: ChannelRoute | None = None,
    ) -> None:
        self._server_url = server_url
        self._sender_id = sender_id
        self._password = password
        self._transport: GatewayTransport = transport or HttpGatewayTransport()
        self._alternative_auth = alternative_auth
        self._digest = digest
        self._class_validator = class_validator
        self._function_validator = function_validator
        self.timeout = timeout
        self._channel_route = channel_route

        self.request = EnvelopeRequest()
        self._response: EnvelopeResponse | None = None
        self._full_request: str | None = None
        self._full_response: str | None = None
        self._transaction_id: str | None = None
        self._errors: list[ErrorLogEntry] = []

    # -- Error log --

    def _log_error(
        self, code: str, message: str | None = None, function: str | None = None
    ) -> None:
        _logger.warning("%s: %s", function or code, message)
        self._errors.append(ErrorLogEntry(datetime.now(), code, message, function))

    def error_count(self) -> int:
        return len(self._errors)

    def get_errors(self) -> list[ErrorLogEntry]:
        return list(self._errors)

    def get_last_error(self) -> ErrorLogEntry | None:
        return self._errors[-1] if self._errors else None

    def clear_errors(self) -> None:
        self._errors = []

    def _apply(self, function: str, action: Callable[[], _T]) -> _T | None:
        """Run a request mutation, logging a GovTalkError instead of raising."""
        try:
            return action()
        except GovTalkError as e:
            self._log_error(e.kind, str(e), function)
            return None

    # -- Connection settings --

    @property
    def server_url(self) -> str:
        return self._server_url

    def set_server_url(self, url: str) -> bool:
        parsed = urlparse(url) if isinstance(url, str) else None
        if parsed is None or parsed.scheme not in ("http", "https") or not parsed.hostname:
            self._log_error("validation", f"Invalid Gateway URL: {url!r}", "set_server_url")
            return False
        self._server_url = url
        return True

    def set_test_flag(self, flag: bool) -> bool:
        self.request.test_flag = bool(flag)
        return True

    def set_schema_location(self, url: str, validate: bool | None = None) -> bool:
        return self._set("set_schema_location", self.request.set_schema_location, url, validate)

    def set_schema_validation(self, validate: bool) -> bool:
        self.request.schema_validation = bool(validate)
        return True

    # -- Message details --

    def set_message_class(self, message_class: str) -> bool:
        if self._class_validator is not None and isinstance(message_class, str):
            if not self._class_validator(message_class):
                self._log_error(
                    "validation", f"Message class rejected: {message_class!r}", "set_message_class"
                )
                return False
        return self._set("set_message_class", self.request.set_message_class, message_class)

    def set_message_qualifier(self, qualifier: str) -> bool:
        return self._set("set_message_qualifier", self.request.set_qualifier, qualifier)

    def set_message_function(self, function: str | None) -> bool:
        if function is not None and self._function_validator is not None:
            if not self._function_validator(function):
                self._log_error(
                    "validation", f"Message function rejected: {function!r}", "set_message_function"
                )
                return False
        self.request.set_function(function)
        return True

    def set_message_correlation_id(self, correlation_id: str) -> bool:
        return self._set(
            "set_message_correlation_id", self.request.set_correlation_id, correlation_id
        )

    def set_message_transformation(self, transformation: str) -> bool:
        return self._set(
            "set_message_transformation", self.request.set_transformation, transformation
        )

    # -- Sender details --

    def set_sender_email(self, email: str) -> bool:
        return self._set("set_sender_email", self.request.set_sender_email, email)

    def set_message_authentication(self, auth_type: str) -> bool:
        return self._set("set_message_authentication", self.request.set_auth_type, auth_type)

    # -- Body --

    def set_message_body(self, body: Any, xml_schema: str | None = None) -> bool:
        """
        Set the envelope body, optionally validating it against a schema first.

        Returns:
            True if the body was accepted and stored.
        """
        try:
            message_body = as_body(body)
            if xml_schema is not None and not validate_xml(message_body.serialize(), xml_schema):
                raise SchemaError(f"Message body does not validate against {xml_schema}")
        except GovTalkError as e:
            self._log_error(e.kind, str(e), "set_message_body")
            return False
        self.request.body = message_body
        return True

    # -- Keys, targets, routes --

    def add_message_key(self, key_type: str, value: str) -> bool:
        return self._set("add_message_key", self.request.add_key, key_type, value)

    def delete_message_key(self, key_type: str, value: str | None = None) -> int:
        return self.request.delete_key(key_type, value)

    def reset_message_keys(self) -> bool:
        self.request.reset_keys()
        return True

    def add_target_organisation(self, organisation: str, force: bool = False) -> bool:
        return self._set(
            "add_target_organisation", self.request.add_target_organisation, organisation, force
        )

    def delete_target_organisation(self, organisation: str) -> int:
        removed = self._apply(
            "delete_target_organisation",
            lambda: self.request.delete_target_organisation(organisation),
        )
        return removed or 0

    def reset_target_organisations(self) -> bool:
        self.request.reset_target_organisations()
        return True

    def add_channel_route(
        self,
        uri: str,
        product: str | None = None,
        version: str | None = None,
        ids: list[tuple[str, str]] | None = None,
        timestamp: datetime | str | None = None,
        force: bool = False,
    ) -> bool:
        """Add a ChannelRouting entry.

        Returns:
            True if stored; False if invalid or a duplicate (product, version).
        """
        stored = self._apply(
            "add_channel_route",
            lambda: self.request.add_channel_route(uri, product, version, ids, timestamp, force),
        )
        return bool(stored)

    def reset_channel_routes(self) -> bool:
        self.request.reset_channel_routes()
        return True

    def _set(self, function: str, setter: Callable[..., None], *args: Any) -> bool:
        try:
            setter(*args)
        except GovTalkError as e:
            self._log_error(e.kind, str(e), function)
            return False
        return True

    # -- Response accessors --

    @property
    def transaction_id(self) -> str | None:
        """Transaction ID of the last built envelope."""
        return self._transaction_id

    @property
    def response(self) -> EnvelopeResponse | None:
        return self._response

    @property
    def state(self) -> ExchangeState:
        response = self._response
        if response is None:
            return ExchangeState.IDLE
        if response.has_errors:
            return ExchangeState.ERRORED
        if response.qualifier == "acknowledgement" and response.endpoint is not None:
            return ExchangeState.ACKNOWLEDGED
        if response.qualifier == "response":
            return ExchangeState.COMPLETED
        return ExchangeState.PARSED

    def get_full_xml_request(self) -> str | None:
        return self._full_request

    def get_full_xml_response(self) -> str | None:
        return self._full_response

    def get_response_qualifier(self) -> str | None:
        return self._response.qualifier if self._response else None

    def get_gateway_timestamp(self) -> datetime | None:
        return self._response.gateway_timestamp if self._response else None

    def get_response_correlation_id(self) -> str | None:
        if self._response is None:
            return None
        return self._response.correlation_id or None

    def get_response_endpoint(self) -> ResponseEndpoint | None:
        return self._response.endpoint if self._response else None

    def get_response_poll_interval(self) -> int | None:
        endpoint = self.get_response_endpoint()
        return endpoint.poll_interval if endpoint else None

    def response_has_errors(self) -> bool:
        return self._response is not None and self._response.has_errors

    def get_response_errors(self) -> dict[str, list[GatewayError]] | None:
        """Classified Gateway errors, or None if there is no response or no error."""
        response = self._response
        if response is None or not response.has_errors:
            return None
        return {bucket: list(entries) for bucket, entries in response.errors.items()}

    def get_response_body(self) -> Element | None:
        return self._response.body if self._response else None

    # -- Sending --

    def _prepare_request(self) -> EnvelopeRequest:
        """The request as it will be sent, with an implied correlation ID filled in."""
        request = self.request
        needs_correlation = request.qualifier == "poll" or request.function == "delete"
        if not needs_correlation or request.correlation_id:
            return request
        correlation_id = self.get_response_correlation_id()
        if correlation_id is None:
            raise ValidationError(
                f"A {request.function if request.function == 'delete' else 'poll'} request "
                "needs a correlation ID and no previous response supplied one"
            )
        return dataclasses.replace(request, correlation_id=correlation_id)

    def _fail(self, error: GovTalkError, *, log: bool = True) -> SendResult:
        if log:
            self._log_error(error.kind, str(error), "send_message")
        return SendResult(ok=False, failure=error.kind, message=str(error))

    def send_message(self) -> SendResult:
        """
        Build, validate and send the current envelope, then parse the reply.

        Returns:
            A truthy :class:`SendResult` if a reply was received and
            accepted; otherwise a falsy one naming the failure kind.
        """
        # Building
        try:
            request = self._prepare_request()
            transaction_id = new_transaction_id()
            authenticator = resolve_authenticator(request.auth_type or "", self._alternative_auth)
            package = build_envelope(
                request,
                sender_id=self._sender_id,
                password=self._password,
                transaction_id=transaction_id,
                authenticator=authenticator,
                digest=self._digest,
                self_route=self._channel_route,
            )
            self._transaction_id = transaction_id
            if request.schema_location is not None and request.schema_validation:
                assert_valid(package, request.schema_location)
        except GovTalkError as e:
            return self._fail(e)
        self._full_request = package

        # Sent
        url = self._server_url
        _logger.info(
            "Sending %s/%s to %s (transaction %s)",
            request.message_class,
            request.qualifier,
            url,
            transaction_id,
        )
        try:
            raw = self._transport.post(url, package.encode("utf-8"), self.timeout)
        except TransportError as e:
            _logger.warning("Gateway exchange failed: %s", e)
            return self._fail(e, log=False)
        if not raw:
            _logger.warning("Gateway returned an empty reply")
            return SendResult(ok=False, failure="transport", message="Empty reply from Gateway")

        text = raw.decode("utf-8", errors="replace")
        self._full_response = text

        if request.transformation != "XML":
            self._response = None
            _logger.warning(
                "Transformation %s replies are not parsed; response accessors stay empty",
                request.transformation,
            )
            return SendResult(ok=True)

        # Parsed; a rejected reply leaves the previous response queryable
        try:
            if request.schema_location is not None and request.schema_validation:
                assert_valid(text, request.schema_location)
            response = parse_envelope_response(text)
        except GovTalkError as e:
            _logger.warning("Gateway reply rejected: %s", e)
            return self._fail(e, log=False)

        self._response = response
        if response.qualifier == "acknowledgement" and response.endpoint and response.endpoint.url:
            _logger.info(
                "Acknowledged; poll %s every %ss",
                response.endpoint.url,
                response.endpoint.poll_interval,
            )
            self._server_url = response.endpoint.url
        _logger.info(
            "Gateway replied: qualifier=%s, state=%s", response.qualifier, self.state.value
        )
        return SendResult(ok=True)

    # -- Generic requests --

    def send_poll_request(
        self, correlation_id: str | None = None, poll_url: str | None = None
    ) -> SendResult:
        """
        Poll for the outcome of an earlier submission.

        The message class of the original submission is reused and the
        body is emptied.

        Args:
            correlation_id: Defaults to the last response's correlation ID.
            poll_url: Defaults to the current server URL (which an
                acknowledgement will already have switched to its endpoint).
        """
        if poll_url is not None and not self.set_server_url(poll_url):
            return SendResult(ok=False, failure="validation", message="Invalid poll URL")
        if correlation_id is not None and not self.set_message_correlation_id(correlation_id):
            return SendResult(ok=False, failure="validation", message="Invalid correlation ID")
        if correlation_id is None:
            self.request.correlation_id = ""
        self.request.set_qualifier("poll")
        self.request.set_function("submit")
        self.request.set_body("")
        return self.send_message()

    def send_delete_request(
        self, correlation_id: str | None = None, message_class: str | None = None
    ) -> bool:
        """
        Delete a completed submission from the Gateway.

        Returns:
            True if the Gateway accepted the deletion without errors.
        """
        if correlation_id is not None and message_class is not None:
            if not (
                self.set_message_correlation_id(correlation_id)
                and self.set_message_class(message_class)
            ):
                return False
        else:
            if self.get_response_correlation_id() is None:
                self._log_error(
                    "validation", "No correlation ID available to delete", "send_delete_request"
                )
                return False
            self.request.correlation_id = ""
        self.request.set_qualifier("request")
        self.request.set_function("delete")
        self.request.set_body("")
        return bool(self.send_message()) and not self.response_has_errors()

    def send_list_request(self, message_class: str | None = None) -> list[StatusRecord] | None:
        """
        List the submissions of a message class held by the Gateway.

        Returns:
            The status records, or None on failure or an unexpected reply.
        """
        if message_class is not None and not self.set_message_class(message_class):
            return None
        self.request.set_qualifier("request")
        self.request.set_function("list")
        self.request.correlation_id = ""
        self.request.set_body("")
        if not self.send_message() or self.response_has_errors():
            return None
        if self.get_response_qualifier() != "response":
            return None
        return parse_status_report(self.get_response_body())
