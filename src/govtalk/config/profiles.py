"""
Gateway profiles.

A profile names a Gateway endpoint together with the envelope defaults
its agency expects.  Built-in profiles are defined here; any other
endpoint is represented as an ad-hoc custom profile.
"""

from __future__ import annotations

__all__ = ["BUILTIN_PROFILES", "GatewayProfile", "get_profile", "make_custom_profile"]

from dataclasses import dataclass
from urllib.parse import urlparse

from ..constants import DEFAULT_TIMEOUT_HTTP_POST


@dataclass(frozen=True)
class GatewayProfile:
    """Describes one Gateway deployment."""

    name: str
    display_name: str
    url: str
    timeout: int = DEFAULT_TIMEOUT_HTTP_POST
    auth_type: str = "clear"
    test_flag: bool = False
    agency: str = "generic"


# ── Built-in profiles ────────────────────────────────────────────────

BUILTIN_PROFILES: dict[str, GatewayProfile] = {
    "hmrc": GatewayProfile(
        name="hmrc",
        display_name="HMRC Government Gateway",
        url="https://secure.gateway.gov.uk/submission",
        agency="hmrc",
    ),
    "hmrc-dev": GatewayProfile(
        name="hmrc-dev",
        display_name="HMRC developer test service (VSIPS)",
        url="https://secure.dev.gateway.gov.uk/submission",
        test_flag=True,
        agency="hmrc",
    ),
    "hmrc-tpvs": GatewayProfile(
        name="hmrc-tpvs",
        display_name="HMRC third-party validation service",
        url="https://www.tpvs.hmrc.gov.uk/HMRC/VATDEC",
        test_flag=True,
        agency="hmrc",
    ),
    "companies-house": GatewayProfile(
        name="companies-house",
        display_name="Companies House XML Gateway",
        url="https://xmlgw.companieshouse.gov.uk/v1-0/xmlgw/Gateway",
        auth_type="alternative",
        agency="companies-house",
    ),
}


def get_profile(name: str) -> GatewayProfile:
    """
    Look up a built-in profile by name.

    Args:
        name: Profile name (case-insensitive).

    Raises:
        KeyError: If no built-in profile matches.
    """
    key = name.lower().strip()
    if key not in BUILTIN_PROFILES:
        available = ", ".join(sorted(BUILTIN_PROFILES))
        msg = f"Unknown profile {name!r}. Available: {available}"
        raise KeyError(msg)
    return BUILTIN_PROFILES[key]


def make_custom_profile(url: str, timeout: int = DEFAULT_TIMEOUT_HTTP_POST) -> GatewayProfile:
    """
    Create an ad-hoc profile for any other Gateway endpoint.

    Raises:
        ValueError: If the URL scheme or hostname is invalid.
    """
    parsed = urlparse(url)
    if parsed.scheme == "http":
        raise ValueError(
            "HTTP URLs are not supported. Use https:// to protect credentials in transit."
        )
    if parsed.scheme != "https":
        raise ValueError(f"Invalid URL scheme {parsed.scheme!r}. Use https://.")
    if not parsed.hostname:
        raise ValueError(f"Invalid URL: no hostname found in {url!r}")

    return GatewayProfile(
        name="custom",
        display_name=f"Custom ({url})",
        url=url,
        timeout=timeout,
    )
