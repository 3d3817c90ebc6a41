"""
Configuration and Gateway profile management.

Unified API for all config-related functionality. Instead of importing
from individual submodules (config, credentials, profiles), import from
this package directly.
"""

from __future__ import annotations

# Gateway configuration
from .config import (
    CONFIG_FILE,
    get_active_profile,
    get_sender_email,
    get_server_config,
    logout,
    reset_all,
    save_sender_email,
    save_server_config,
)

# Credentials management
from .credentials import (
    clear_credentials,
    get_credential_storage_info,
    get_credentials,
    get_saved_sender_id,
    migrate_plaintext_password,
    resolve_credentials,
    save_credentials,
)

# Gateway profiles
from .profiles import BUILTIN_PROFILES, GatewayProfile, get_profile, make_custom_profile

__all__ = [
    "BUILTIN_PROFILES",
    "CONFIG_FILE",
    "GatewayProfile",
    "clear_credentials",
    "get_active_profile",
    "get_credential_storage_info",
    "get_credentials",
    "get_profile",
    "get_saved_sender_id",
    "get_sender_email",
    "get_server_config",
    "logout",
    "make_custom_profile",
    "migrate_plaintext_password",
    "reset_all",
    "resolve_credentials",
    "save_credentials",
    "save_sender_email",
    "save_server_config",
]
