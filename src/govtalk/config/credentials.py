"""
Gateway credential management.

The sender ID lives in the config file; the password is stored in the
system keychain via keyring, falling back to the config file when no
usable keychain backend is present.
"""

from __future__ import annotations

__all__ = [
    "clear_credentials",
    "get_credential_storage_info",
    "get_credentials",
    "get_saved_sender_id",
    "migrate_plaintext_password",
    "resolve_credentials",
    "save_credentials",
]

import logging
import os

import keyring
from keyring.errors import KeyringError

from ..constants import ENV_PASSWORD, ENV_SENDER_ID
from ._storage import CONFIG_FILE, read_config, update_config

# Keyring service name for credential storage
_KEYRING_SERVICE = "govtalk"

_logger = logging.getLogger(__name__)


def _keyring_delete(sender_id: str) -> None:
    """Delete a single keyring entry for the given sender ID (best-effort)."""
    if not sender_id:
        return
    try:
        keyring.delete_password(_KEYRING_SERVICE, sender_id)
        _logger.debug("Deleted keyring entry")
    except KeyringError:
        pass  # no entry
    except (OSError, RuntimeError) as e:
        _logger.debug("Keyring delete failed: %s", e)


def get_credential_storage_info() -> str:
    """Return a human-readable description of where passwords are stored."""
    backend = keyring.get_keyring()
    module = type(backend).__module__ or ""
    if "fail" in module or "null" in module:
        return f"{CONFIG_FILE} (plaintext)"
    if "macOS" in module:
        return "macOS Keychain"
    if "Windows" in module or "WinVault" in module:
        return "Windows Credential Manager"
    if "SecretService" in module:
        return "Linux Secret Service"
    if "KWallet" in module:
        return "KDE Wallet"
    return f"System keychain ({type(backend).__name__})"


def resolve_credentials() -> tuple[str, str]:
    """Resolve Gateway credentials from env vars or saved config.

    Priority: env vars > saved credentials (partial merge allowed --
    e.g. sender ID from env, password from the keychain).

    Returns:
        (sender_id, password) -- may be empty strings if not configured.
    """
    source = "none"

    sender_id = os.environ.get(ENV_SENDER_ID, "").strip()
    password = os.environ.get(ENV_PASSWORD, "").strip()
    if sender_id or password:
        source = "env"

    if not sender_id or not password:
        saved_id, saved_password = get_credentials()
        if saved_id and not sender_id:
            sender_id = saved_id
            source = "saved"
        if saved_password and not password:
            password = saved_password

    _logger.debug(
        "resolve_credentials: has_sender=%s, has_password=%s, source=%s",
        bool(sender_id),
        bool(password),
        source,
    )
    return sender_id, password


def migrate_plaintext_password() -> None:
    """Remove a plaintext password from the config file once the keychain has it.

    Idempotent -- safe to call multiple times.
    """
    config = read_config()
    sender_id = config.get("sender_id")
    if not sender_id or not config.get("password"):
        return

    try:
        stored = keyring.get_password(_KEYRING_SERVICE, sender_id)
    except (KeyringError, OSError, RuntimeError):
        return  # can't verify keyring has it -- keep plaintext

    if stored:
        update_config(password=None)
        _logger.info("Migrated: removed plaintext password from config file")


def get_saved_sender_id() -> str | None:
    """Return the saved sender ID without touching the keychain."""
    return read_config().get("sender_id")


def get_credentials() -> tuple[str | None, str | None]:
    """
    Get saved Gateway credentials.

    Returns:
        (sender_id, password) where:
        - (None, None) if nothing is saved.
        - (sender_id, None) if the password is inaccessible.
        - (sender_id, password) if both are available.
    """
    migrate_plaintext_password()
    config = read_config()
    sender_id = config.get("sender_id")
    if not sender_id:
        return None, None

    try:
        password = keyring.get_password(_KEYRING_SERVICE, sender_id)
    except KeyringError as e:
        # Locked keychain, access denied, no backend
        _logger.debug("Keyring read failed, trying config file: %s", e)
    except (OSError, RuntimeError) as e:
        _logger.debug("Keyring backend error, trying config file: %s", e)
    else:
        if password:
            return sender_id, password

    password = config.get("password")
    if password:
        _logger.debug("get_credentials: found password in config file (plaintext)")
        return sender_id, password
    return sender_id, None


def save_credentials(sender_id: str, password: str) -> bool:
    """
    Save Gateway credentials.

    If the sender ID changed since the last save, the old keychain entry
    is removed.

    Returns:
        True if the password went to the system keychain, False if it
        fell back to the config file (plaintext, chmod 600).
    """
    old_sender = read_config().get("sender_id")
    if old_sender and old_sender != sender_id:
        _keyring_delete(old_sender)

    try:
        keyring.set_password(_KEYRING_SERVICE, sender_id, password)
    except KeyringError as e:
        _logger.warning("Keyring save failed, using config file: %s", e)
    except (OSError, RuntimeError) as e:
        _logger.warning("Keyring backend error, using config file: %s", e)
    else:
        update_config(sender_id=sender_id, password=None)
        return True

    update_config(sender_id=sender_id, password=password)
    return False


def clear_credentials() -> None:
    """Remove saved credentials from the keychain and the config file."""
    config = read_config()
    sender_id = config.get("sender_id")
    _logger.info(
        "Clearing credentials: has_sender=%s, password_in_config=%s",
        bool(sender_id),
        "password" in config,
    )
    if sender_id:
        _keyring_delete(sender_id)
    update_config(sender_id=None, password=None)
