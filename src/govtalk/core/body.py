"""
Message body payloads for the envelope ``Body`` element.

A body is anything with a ``serialize()`` method returning an XML
fragment.  The envelope builder depends only on that capability, never on
the concrete producer.
"""

from __future__ import annotations

__all__ = [
    "ElementBody",
    "MappingBody",
    "MessageBody",
    "RawBody",
    "as_body",
    "xml_escape",
    "xml_from_mapping",
]

import xml.etree.ElementTree as ET
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from xml.sax.saxutils import escape as _xml_escape

from ..errors import ValidationError


def xml_escape(s: str) -> str:
    """Escape XML special characters in user input."""
    return _xml_escape(s, {'"': "&quot;", "'": "&apos;"})


@runtime_checkable
class MessageBody(Protocol):
    """Anything that can render itself as the envelope body fragment."""

    def serialize(self) -> str: ...


@dataclass(frozen=True)
class RawBody:
    """A pre-rendered XML fragment (or empty string), passed through as-is."""

    text: str

    def serialize(self) -> str:
        return self.text


@dataclass(frozen=True)
class ElementBody:
    """A body built with :mod:`xml.etree.ElementTree`."""

    element: ET.Element

    def serialize(self) -> str:
        return ET.tostring(self.element, encoding="unicode")


@dataclass(frozen=True)
class MappingBody:
    """A body described as nested mappings and lists.

    See :func:`xml_from_mapping` for the mapping rules.
    """

    data: Mapping[str, Any]

    def serialize(self) -> str:
        return xml_from_mapping(self.data)


def as_body(value: object) -> MessageBody:
    """Coerce a caller-supplied body into a :class:`MessageBody`.

    Raises:
        ValidationError: If the value is neither a string nor a body.
    """
    if isinstance(value, str):
        return RawBody(value)
    if isinstance(value, MessageBody):
        return value
    raise ValidationError(f"Unsupported message body type: {type(value).__name__}")


def _scalar_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return xml_escape(str(value))


def _leaf(name: str, value: object) -> str:
    return f"<{name}>{_scalar_text(value)}</{name}>"


def xml_from_mapping(data: Mapping[str, Any] | Sequence[Any], parent: str | None = None) -> str:
    """
    Render nested mappings and sequences as XML elements.

    Each mapping key names an element.  Mapping values are wrapped in an
    element named by their key; sequence values are emitted as repeated
    sibling elements that all take the key's name, with no wrapper.
    Scalars become leaf elements.  Inside a sequence, items take the name
    of the parent key.

    >>> xml_from_mapping({"Address": {"Line": ["1 High St", "Town"], "PostCode": "AB1 2CD"}})
    '<Address><Line>1 High St</Line><Line>Town</Line><PostCode>AB1 2CD</PostCode></Address>'

    Args:
        data: Mapping (named children) or sequence (repeated siblings).
        parent: Element name used for sequence items.

    Returns:
        The XML fragment as a string.

    Raises:
        ValidationError: If a sequence appears without a parent name.
    """
    parts: list[str] = []
    if isinstance(data, Mapping):
        for key, value in data.items():
            if isinstance(value, Mapping):
                parts.append(f"<{key}>{xml_from_mapping(value, key)}</{key}>")
            elif isinstance(value, (list, tuple)):
                parts.append(xml_from_mapping(value, key))
            else:
                parts.append(_leaf(key, value))
        return "".join(parts)

    if parent is None:
        raise ValidationError("Repeated elements need a parent element name")
    for item in data:
        if isinstance(item, Mapping):
            parts.append(f"<{parent}>{xml_from_mapping(item, parent)}</{parent}>")
        elif isinstance(item, (list, tuple)):
            parts.append(xml_from_mapping(item, parent))
        else:
            parts.append(_leaf(parent, item))
    return "".join(parts)
