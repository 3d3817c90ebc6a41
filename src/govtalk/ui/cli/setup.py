"""
Interactive setup wizard for the govtalk CLI.

Configures the Gateway profile, credentials, and sender email.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from ...config import (
    BUILTIN_PROFILES,
    CONFIG_FILE,
    GatewayProfile,
    get_active_profile,
    get_profile,
    get_saved_sender_id,
    get_sender_email,
    make_custom_profile,
    save_sender_email,
    save_server_config,
)
from ...constants import ENV_URL
from ...core.request import validate_email
from ...errors import ValidationError
from ..helpers import offer_save_credentials, prompt_credentials, safe_input

if TYPE_CHECKING:
    import argparse

# ── Setup steps ──────────────────────────────────────────────────────


def _choose_profile(preset_profile: str | None = None) -> GatewayProfile:
    """Step 1: choose a Gateway profile."""
    if preset_profile:
        try:
            profile = get_profile(preset_profile)
        except KeyError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Using profile: {profile.display_name}")
        print(f"  URL: {profile.url}")
        return profile

    print("Choose a Gateway:\n")

    profiles_list = sorted(BUILTIN_PROFILES.values(), key=lambda p: p.name)
    for i, p in enumerate(profiles_list, 1):
        print(f"  {i}. {p.display_name}")
    print(f"  {len(profiles_list) + 1}. Custom Gateway (enter URL)")
    print()

    choice = safe_input(f"Your choice [1-{len(profiles_list) + 1}]: ")
    if choice is None:
        sys.exit(1)

    try:
        idx = int(choice) - 1
    except ValueError:
        print("Invalid choice.", file=sys.stderr)
        sys.exit(1)

    if idx < 0 or idx > len(profiles_list):
        print("Invalid choice.", file=sys.stderr)
        sys.exit(1)

    if idx < len(profiles_list):
        profile = profiles_list[idx]
        print(f"\nSelected: {profile.display_name}")
        print(f"  URL: {profile.url}")
        return profile

    url = safe_input("\nGateway submission URL (https://...): ")
    if not url:
        print("Error: URL is required.", file=sys.stderr)
        sys.exit(1)
    try:
        return make_custom_profile(url)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _ask_email() -> str | None:
    """Step 3: optional sender email for SenderDetails."""
    while True:
        email = safe_input("\nSender email (optional): ")
        if not email:
            return None
        try:
            return validate_email(email)
        except ValidationError as e:
            print(f"  {e}", file=sys.stderr)


# ── Main setup command ───────────────────────────────────────────────


def cmd_setup(args: argparse.Namespace) -> None:
    """Interactive setup wizard -- configure Gateway, credentials, and sender email."""
    print("govtalk Setup Wizard")
    print("=" * 40)
    print()

    saved_sender = get_saved_sender_id()
    current_profile = get_active_profile()
    if current_profile:
        print("Current configuration:")
        print(f"  Profile:      {current_profile.display_name}")
        print(f"  URL:          {current_profile.url}")
        email = get_sender_email()
        if email:
            print(f"  Email:        {email}")
        if saved_sender:
            print(f"  Credentials:  saved (sender: {saved_sender})")
        print(f"  Config file:  {CONFIG_FILE}")
        print()

    profile = _choose_profile(getattr(args, "profile", None))
    print()
    sender_id, password = prompt_credentials()
    email = _ask_email()

    save_server_config(profile)
    save_sender_email(email)

    print(f"\nSaved to {CONFIG_FILE}")
    print(f"  Gateway: {profile.display_name}")
    if email:
        print(f"  Email:   {email}")
    print(f"Override anytime with the {ENV_URL} env variable.")

    offer_save_credentials(sender_id, password)
