"""
Gateway and sender settings for govtalk.

The chosen Gateway and the sender email live in the settings file
(``_storage``); environment variables override both.  Credential
management lives in ``credentials.py``.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "get_active_profile",
    "get_sender_email",
    "get_server_config",
    "logout",
    "reset_all",
    "save_sender_email",
    "save_server_config",
]

import logging
import os

from ..constants import (
    DEFAULT_TIMEOUT_HTTP_POST,
    ENV_EMAIL,
    ENV_TIMEOUT,
    ENV_URL,
    MAX_TIMEOUT,
    MIN_TIMEOUT,
)
from ._storage import CONFIG_DIR, CONFIG_FILE, clear_config, read_config, update_config
from .credentials import clear_credentials
from .profiles import BUILTIN_PROFILES, GatewayProfile, make_custom_profile

_logger = logging.getLogger(__name__)


def _env_timeout() -> int | None:
    """Timeout from the environment; the default if it is set but unusable."""
    raw = os.environ.get(ENV_TIMEOUT, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        _logger.warning("Invalid %s value %r, using default", ENV_TIMEOUT, raw)
        return DEFAULT_TIMEOUT_HTTP_POST
    if not MIN_TIMEOUT <= value <= MAX_TIMEOUT:
        _logger.warning(
            "%s=%d out of range [%d, %d], using default",
            ENV_TIMEOUT,
            value,
            MIN_TIMEOUT,
            MAX_TIMEOUT,
        )
        return DEFAULT_TIMEOUT_HTTP_POST
    return value


# ── Gateway ──────────────────────────────────────────────────────────


def get_server_config() -> tuple[str | None, int | None, str | None]:
    """
    Resolve the Gateway URL and timeout.

    Each value comes from the first source that has it: environment,
    settings file, then the saved built-in profile.

    Returns:
        (url, timeout, profile_name), or (None, None, None) when no URL
        is configured anywhere.
    """
    config = read_config()
    profile_name = config.get("profile")
    builtin = BUILTIN_PROFILES.get(profile_name) if profile_name else None

    url = os.environ.get(ENV_URL, "").strip() or config.get("url")
    if not url and builtin is not None:
        url = builtin.url
    if not url:
        return None, None, None

    timeout = _env_timeout()
    if timeout is None:
        fallback = builtin.timeout if builtin is not None else DEFAULT_TIMEOUT_HTTP_POST
        timeout = config.get("timeout", fallback)
    return url, timeout, profile_name


def get_active_profile() -> GatewayProfile | None:
    """The saved Gateway as a profile (built-in or custom), or None."""
    config = read_config()
    builtin = BUILTIN_PROFILES.get(config.get("profile", ""))
    if builtin is not None:
        return builtin
    url = config.get("url")
    if not url:
        return None
    return make_custom_profile(url, config.get("timeout", DEFAULT_TIMEOUT_HTTP_POST))


def save_server_config(profile: GatewayProfile) -> None:
    update_config(profile=profile.name, url=profile.url, timeout=profile.timeout)


# ── Sender details ───────────────────────────────────────────────────


def get_sender_email() -> str | None:
    """Sender email for ``SenderDetails``: env var first, then config."""
    return os.environ.get(ENV_EMAIL, "").strip() or read_config().get("email")


def save_sender_email(email: str | None) -> None:
    update_config(email=email or None)


def reset_all() -> None:
    """Clear all config: credentials, sender details, and Gateway profile."""
    clear_credentials()
    clear_config()


def logout() -> None:
    """Clear credentials and sender email, preserving the Gateway profile."""
    clear_credentials()
    update_config(email=None)
