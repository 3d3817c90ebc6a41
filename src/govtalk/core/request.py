"""
Outbound envelope state.

:class:`EnvelopeRequest` collects everything the builder needs except the
sender credentials, which belong to the client.  Every mutator validates
its input and raises :class:`~govtalk.errors.ValidationError` without
changing the request when the value is rejected.
"""

from __future__ import annotations

__all__ = [
    "ChannelRoute",
    "EnvelopeRequest",
    "MessageKey",
    "format_timestamp",
    "validate_auth_type",
    "validate_correlation_id",
    "validate_email",
    "validate_message_class",
    "validate_qualifier",
    "validate_schema_location",
    "validate_transformation",
]

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from ..constants import (
    AUTH_TYPES,
    MAX_CLASS_LENGTH,
    MAX_TARGET_ORGANISATION_LENGTH,
    MIN_CLASS_LENGTH,
    QUALIFIERS,
    TRANSFORMATIONS,
)
from ..errors import ValidationError
from .body import MessageBody, as_body

_logger = logging.getLogger(__name__)

_CORRELATION_ID_PATTERN = re.compile(r"[0-9A-F]{0,32}")
# Pattern given by the GovTalk 2.0 envelope specification (somewhat limited)
_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9.\-_]{1,64}@[A-Za-z0-9.\-_]{1,64}")
_SCHEMA_LOCATION_PATTERN = re.compile(r"^https?://[\w.-]+\.gov\.uk")


# ── Value types ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class MessageKey:
    """A ``GovTalkDetails/Keys/Key`` entry."""

    type: str
    value: str


@dataclass(frozen=True)
class ChannelRoute:
    """One hop in the ``ChannelRouting`` audit trail."""

    uri: str
    product: str | None = None
    version: str | None = None
    ids: tuple[tuple[str, str], ...] = ()
    timestamp: str = ""

    @property
    def identity(self) -> tuple[str | None, str | None]:
        """The (product, version) pair used for duplicate detection."""
        return self.product, self.version


def format_timestamp(value: datetime | str | None = None) -> str:
    """Render a route timestamp as ISO 8601 with a UTC offset.

    Strings are parsed with :meth:`datetime.fromisoformat`; anything that
    cannot be parsed falls back to the current local time.
    """
    moment: datetime | None = None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            _logger.debug("Unparseable route timestamp %r, using current time", value)
    if moment is None:
        moment = datetime.now()
    return moment.astimezone().isoformat(timespec="seconds")


# ── Validators ───────────────────────────────────────────────────────


def validate_message_class(value: str) -> str:
    if not isinstance(value, str) or not MIN_CLASS_LENGTH < len(value) < MAX_CLASS_LENGTH:
        raise ValidationError(
            f"Message class must be between {MIN_CLASS_LENGTH + 1} and "
            f"{MAX_CLASS_LENGTH - 1} characters: {value!r}"
        )
    return value


def validate_qualifier(value: str) -> str:
    qualifier = value.lower() if isinstance(value, str) else value
    if qualifier not in QUALIFIERS:
        raise ValidationError(f"Unsupported message qualifier: {value!r}")
    return qualifier


def validate_correlation_id(value: str) -> str:
    if not isinstance(value, str) or not _CORRELATION_ID_PATTERN.fullmatch(value):
        raise ValidationError(f"Invalid correlation ID: {value!r}")
    return value


def validate_transformation(value: str) -> str:
    if value not in TRANSFORMATIONS:
        raise ValidationError(f"Unsupported transformation: {value!r}")
    return value


def validate_auth_type(value: str) -> str:
    if value not in AUTH_TYPES:
        raise ValidationError(f"Unsupported authentication type: {value!r}")
    return value


def validate_email(value: str) -> str:
    if not isinstance(value, str) or not _EMAIL_PATTERN.fullmatch(value):
        raise ValidationError(f"Invalid sender email address: {value!r}")
    return value


def validate_schema_location(value: str) -> str:
    if not isinstance(value, str) or not _SCHEMA_LOCATION_PATTERN.match(value):
        raise ValidationError(f"Schema location must be a gov.uk URL: {value!r}")
    return value


def _validate_target_organisation(value: str) -> str:
    if not isinstance(value, str) or not value or len(value) >= MAX_TARGET_ORGANISATION_LENGTH:
        raise ValidationError(f"Invalid target organisation: {value!r}")
    return value


# ── Request ──────────────────────────────────────────────────────────


@dataclass
class EnvelopeRequest:
    """Mutable envelope state assembled between sends."""

    message_class: str | None = None
    qualifier: str | None = None
    function: str | None = None
    correlation_id: str = ""
    transformation: str = "XML"
    test_flag: bool = False
    auth_type: str | None = None
    sender_email: str | None = None
    keys: list[MessageKey] = field(default_factory=list)
    target_organisations: list[str] = field(default_factory=list)
    channel_routes: list[ChannelRoute] = field(default_factory=list)
    schema_location: str | None = None
    schema_validation: bool = True
    body: MessageBody | None = None

    # -- MessageDetails --

    def set_message_class(self, value: str) -> None:
        self.message_class = validate_message_class(value)

    def set_qualifier(self, value: str) -> None:
        self.qualifier = validate_qualifier(value)

    def set_function(self, value: str | None) -> None:
        self.function = value

    def set_correlation_id(self, value: str) -> None:
        self.correlation_id = validate_correlation_id(value)

    def set_transformation(self, value: str) -> None:
        self.transformation = validate_transformation(value)

    # -- SenderDetails --

    def set_auth_type(self, value: str) -> None:
        self.auth_type = validate_auth_type(value)

    def set_sender_email(self, value: str) -> None:
        self.sender_email = validate_email(value)

    # -- Schema / body --

    def set_schema_location(self, value: str, validate: bool | None = None) -> None:
        self.schema_location = validate_schema_location(value)
        if validate is not None:
            self.schema_validation = bool(validate)

    def set_body(self, value: object) -> None:
        self.body = as_body(value)

    # -- Keys --

    def add_key(self, key_type: str, value: str) -> None:
        if not isinstance(key_type, str) or value is None or str(value) == "":
            raise ValidationError(f"Invalid message key: {key_type!r}={value!r}")
        self.keys.append(MessageKey(key_type, str(value)))

    def delete_key(self, key_type: str, value: str | None = None) -> int:
        """Remove every key of the given type (and value, if given).

        Returns:
            The number of keys removed.
        """
        kept = [
            k for k in self.keys if k.type != key_type or (value is not None and k.value != value)
        ]
        removed = len(self.keys) - len(kept)
        self.keys = kept
        return removed

    def reset_keys(self) -> None:
        self.keys = []

    # -- Target details --

    def add_target_organisation(self, organisation: str, force: bool = False) -> None:
        _validate_target_organisation(organisation)
        if not force and organisation in self.target_organisations:
            return
        self.target_organisations.append(organisation)

    def delete_target_organisation(self, organisation: str) -> int:
        _validate_target_organisation(organisation)
        kept = [o for o in self.target_organisations if o != organisation]
        removed = len(self.target_organisations) - len(kept)
        self.target_organisations = kept
        return removed

    def reset_target_organisations(self) -> None:
        self.target_organisations = []

    # -- Channel routing --

    def add_channel_route(
        self,
        uri: str,
        product: str | None = None,
        version: str | None = None,
        ids: list[tuple[str, str]] | tuple[tuple[str, str], ...] | None = None,
        timestamp: datetime | str | None = None,
        force: bool = False,
    ) -> bool:
        """Append a channel route.

        Routes are deduplicated on (product, version) unless ``force``.

        Returns:
            True if a new route was stored, False if it was a duplicate.
        """
        if not isinstance(uri, str):
            raise ValidationError(f"Channel route URI must be a string: {uri!r}")
        route_ids: list[tuple[str, str]] = []
        for entry in ids or ():
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ValidationError(f"Channel route ID must be a (type, value) pair: {entry!r}")
            route_ids.append((str(entry[0]), str(entry[1])))

        route = ChannelRoute(
            uri=uri,
            product=product,
            version=version,
            ids=tuple(route_ids),
            timestamp=format_timestamp(timestamp),
        )
        if not force and any(r.identity == route.identity for r in self.channel_routes):
            return False
        self.channel_routes.append(route)
        return True

    def reset_channel_routes(self) -> None:
        self.channel_routes = []

    # -- Checks --

    def missing_fields(self) -> list[str]:
        """Names of required request fields that are not yet set."""
        required = {
            "message_class": self.message_class,
            "qualifier": self.qualifier,
            "auth_type": self.auth_type,
            "body": self.body,
        }
        return [name for name, value in required.items() if value is None]
