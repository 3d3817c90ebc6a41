"""High-level convenience API for building a configured client.

:func:`create_client` resolves the Gateway profile, URL, timeout and
credentials from explicit arguments, environment variables or saved
config, and returns the client class matching the profile's agency.

For lower-level control, construct :class:`~govtalk.client.GovTalkClient`
(or an agency subclass) directly.
"""

from __future__ import annotations

__all__ = ["create_client"]

import logging

from .agencies.companies_house import CompaniesHouseClient
from .agencies.hmrc import HmrcClient
from .client import GovTalkClient
from .config import (
    get_active_profile,
    get_sender_email,
    get_server_config,
    resolve_credentials,
)
from .config.profiles import GatewayProfile, get_profile, make_custom_profile
from .constants import DEFAULT_TIMEOUT_HTTP_POST
from .errors import ConfigError

_logger = logging.getLogger(__name__)

_AGENCY_CLIENTS: dict[str, type[GovTalkClient]] = {
    "hmrc": HmrcClient,
    "companies-house": CompaniesHouseClient,
}


# ---------------------------------------------------------------------------
# Private resolution helpers
# ---------------------------------------------------------------------------


def _resolve_profile(profile: str | None, url: str | None) -> GatewayProfile | None:
    """Resolve a GatewayProfile from explicit args or saved config.

    Priority:
        1. ``profile`` name -> built-in profile lookup.
        2. ``url`` -> ad-hoc custom profile.
        3. Saved config via :func:`get_active_profile`.
    """
    if profile is not None and url is not None:
        raise ConfigError("Cannot specify both 'profile' and 'url'. Use one or the other.")
    try:
        if profile is not None:
            return get_profile(profile)
        if url is not None:
            return make_custom_profile(url)
    except (KeyError, ValueError) as e:
        raise ConfigError(str(e).strip("'\"")) from e
    return get_active_profile()


def _resolve_url_and_timeout(
    profile_obj: GatewayProfile | None, explicit_timeout: int | None
) -> tuple[str, int]:
    """Resolve final URL and timeout values.

    Raises:
        ConfigError: If no URL can be determined from any source.
    """
    url = profile_obj.url if profile_obj is not None else None
    timeout = explicit_timeout
    if timeout is None and profile_obj is not None:
        timeout = profile_obj.timeout

    if not url:
        config_url, config_timeout, _ = get_server_config()
        if not config_url:
            raise ConfigError(
                "No Gateway URL configured. "
                "Pass url='https://...' or profile='hmrc', "
                "or run `govtalk setup` to save a profile."
            )
        url = config_url
        if timeout is None:
            timeout = config_timeout

    return url, timeout if timeout is not None else DEFAULT_TIMEOUT_HTTP_POST


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_client(
    profile: str | None = None,
    url: str | None = None,
    sender_id: str | None = None,
    password: str | None = None,
    timeout: int | None = None,
) -> GovTalkClient:
    """
    Create a Gateway client from explicit arguments or saved config.

    Args:
        profile: Built-in profile name (e.g. ``"hmrc"``).  Mutually
            exclusive with ``url``.
        url: Custom Gateway URL.
        sender_id: Gateway sender ID; resolved from env/config if omitted.
        password: Gateway password; resolved from env/keychain if omitted.
        timeout: Transport timeout in seconds.

    Returns:
        A :class:`GovTalkClient`, or the agency subclass the profile names.

    Raises:
        ConfigError: If the URL or credentials cannot be resolved.
    """
    profile_obj = _resolve_profile(profile, url)
    server_url, resolved_timeout = _resolve_url_and_timeout(profile_obj, timeout)

    if sender_id is None or password is None:
        saved_id, saved_password = resolve_credentials()
        sender_id = sender_id if sender_id is not None else saved_id
        password = password if password is not None else saved_password
    if not sender_id or not password:
        raise ConfigError(
            "No Gateway credentials configured. "
            "Pass sender_id/password, set GOVTALK_SENDER_ID/GOVTALK_PASSWORD, "
            "or run `govtalk setup`."
        )

    agency = profile_obj.agency if profile_obj is not None else "generic"
    client_class = _AGENCY_CLIENTS.get(agency, GovTalkClient)
    _logger.debug("Creating %s for %s", client_class.__name__, server_url)

    if client_class is CompaniesHouseClient:
        client: GovTalkClient = CompaniesHouseClient(
            sender_id, password, server_url, timeout=resolved_timeout
        )
    else:
        client = client_class(server_url, sender_id, password, timeout=resolved_timeout)
        if profile_obj is not None:
            client.set_message_authentication(profile_obj.auth_type)
            client.set_test_flag(profile_obj.test_flag)

    email = get_sender_email()
    if email:
        client.set_sender_email(email)
    return client
