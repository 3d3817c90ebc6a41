"""
Application-wide constants for govtalk.

Envelope namespaces, validation limits, timeouts, and environment
variable names are centralized here for easy maintenance.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("govtalk")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "AUTH_TYPES",
    "BYTES_PER_MB",
    "DEFAULT_TIMEOUT_HTTP_GET",
    "DEFAULT_TIMEOUT_HTTP_POST",
    "ENVELOPE_NAMESPACE",
    "ENVELOPE_SCHEMA",
    "ENVELOPE_VERSION",
    "ENV_EMAIL",
    "ENV_PASSWORD",
    "ENV_SENDER_ID",
    "ENV_TIMEOUT",
    "ENV_URL",
    "ERROR_BUCKETS",
    "MAX_CLASS_LENGTH",
    "MAX_RESPONSE_SIZE",
    "MAX_TARGET_ORGANISATION_LENGTH",
    "MAX_TIMEOUT",
    "MIN_CLASS_LENGTH",
    "MIN_TIMEOUT",
    "PRODUCT_NAME",
    "PRODUCT_URI",
    "QUALIFIERS",
    "TRANSFORMATIONS",
    "XML_PREVIEW_LENGTH",
    "XSI_NAMESPACE",
    "__version__",
]

# ── Envelope ─────────────────────────────────────────────────────────

ENVELOPE_NAMESPACE = "http://www.govtalk.gov.uk/CM/envelope"
ENVELOPE_SCHEMA = "http://www.govtalk.gov.uk/documents/envelope-v2-0.xsd"
ENVELOPE_VERSION = "2.0"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"

# Trailing channel route identifying this library to the Gateway
PRODUCT_NAME = "govtalk-python"
PRODUCT_URI = "urn:govtalk:python-client"


# ── Field vocabularies ───────────────────────────────────────────────

QUALIFIERS = frozenset({"request", "acknowledgement", "response", "poll", "error"})
TRANSFORMATIONS = frozenset({"XML", "HTML", "text"})
AUTH_TYPES = frozenset({"alternative", "clear", "MD5", "W3Csigned"})

# Buckets always present in a classified error mapping
ERROR_BUCKETS = ("fatal", "recoverable", "business", "warning")


# ── Validation limits ────────────────────────────────────────────────

# Message class length bounds (both exclusive)
MIN_CLASS_LENGTH = 4
MAX_CLASS_LENGTH = 32

# Target organisation names must be shorter than this
MAX_TARGET_ORGANISATION_LENGTH = 65


# ── Timeout values (seconds) ─────────────────────────────────────────

# Gateway submission timeout
DEFAULT_TIMEOUT_HTTP_POST = 60

# Schema fetch timeout
DEFAULT_TIMEOUT_HTTP_GET = 15

MIN_TIMEOUT = 1
MAX_TIMEOUT = 3600


# ── Size limits ──────────────────────────────────────────────────────

BYTES_PER_MB = 1024 * 1024

# Maximum response body accepted from the Gateway (50 MB)
MAX_RESPONSE_SIZE = 50 * 1024 * 1024


# XML preview truncation length for log and error messages (characters)
XML_PREVIEW_LENGTH = 300


# ── Environment variable names ──────────────────────────────────────

ENV_URL = "GOVTALK_URL"
ENV_TIMEOUT = "GOVTALK_TIMEOUT"
ENV_SENDER_ID = "GOVTALK_SENDER_ID"
ENV_PASSWORD = "GOVTALK_PASSWORD"
ENV_EMAIL = "GOVTALK_EMAIL"
