"""
XML Schema validation gate.

Schemas are fetched over HTTP(S) and compiled with lxml.  Compiled
schemas are cached per URL for the life of the process; reachability is
checked on every call to :func:`check_schema_reachable`.
"""

from __future__ import annotations

__all__ = ["assert_valid", "check_schema_reachable", "clear_schema_cache", "validate_xml"]

import logging

from lxml import etree

from ..constants import DEFAULT_TIMEOUT_HTTP_GET
from ..errors import SchemaError, TransportError
from .transport import http_get

_logger = logging.getLogger(__name__)

_schema_cache: dict[str, etree.XMLSchema] = {}

# No entity expansion in documents under validation
_document_parser = etree.XMLParser(resolve_entities=False, no_network=True)


def clear_schema_cache() -> None:
    """Forget every compiled schema."""
    _schema_cache.clear()


def check_schema_reachable(url: str, *, timeout: int = DEFAULT_TIMEOUT_HTTP_GET) -> bytes:
    """
    Fetch a schema document, failing hard if the server does not serve it.

    Args:
        url: Schema URL.
        timeout: HTTP timeout in seconds.

    Returns:
        The schema document bytes.

    Raises:
        SchemaError: If the schema is missing (HTTP 404), the server
            answers with any other HTTP error, or the fetch fails.
    """
    try:
        data = http_get(url, timeout=timeout)
    except TransportError as e:
        if e.status == 404:
            raise SchemaError(f"Schema not found (HTTP 404): {url}") from e
        raise SchemaError(f"Schema unreachable: {url}: {e}") from e
    if not data:
        raise SchemaError(f"Schema is empty: {url}")
    return data


def _load_schema(url: str, timeout: int) -> etree.XMLSchema:
    schema = _schema_cache.get(url)
    if schema is not None:
        return schema
    data = check_schema_reachable(url, timeout=timeout)
    try:
        # base_url lets xs:include / xs:import resolve relative to the schema
        schema_doc = etree.fromstring(data, base_url=url)
        schema = etree.XMLSchema(schema_doc)
    except (etree.XMLSyntaxError, etree.XMLSchemaParseError) as e:
        raise SchemaError(f"Cannot compile schema {url}: {e}") from e
    _schema_cache[url] = schema
    _logger.debug("Compiled schema %s", url)
    return schema


def _validate(xml: str | bytes, schema_url: str, timeout: int) -> list[str]:
    schema = _load_schema(schema_url, timeout)
    payload = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        document = etree.fromstring(payload, _document_parser)
    except etree.XMLSyntaxError as e:
        return [f"Not well-formed: {e}"]
    if schema.validate(document):
        return []
    return [f"line {entry.line}: {entry.message}" for entry in schema.error_log]


def validate_xml(
    xml: str | bytes, schema_url: str, *, timeout: int = DEFAULT_TIMEOUT_HTTP_GET
) -> bool:
    """
    Check a document against a schema.

    Returns:
        True if the document is valid.

    Raises:
        SchemaError: If the schema itself cannot be fetched or compiled.
    """
    problems = _validate(xml, schema_url, timeout)
    if problems:
        _logger.debug("Schema validation against %s failed: %s", schema_url, problems[0])
    return not problems


def assert_valid(
    xml: str | bytes, schema_url: str, *, timeout: int = DEFAULT_TIMEOUT_HTTP_GET
) -> None:
    """
    Like :func:`validate_xml`, but raise on an invalid document.

    Raises:
        SchemaError: If the schema is unusable or the document is invalid.
            The message lists the validator's errors.
    """
    problems = _validate(xml, schema_url, timeout)
    if problems:
        raise SchemaError(f"Schema validation against {schema_url} failed: " + "; ".join(problems))
