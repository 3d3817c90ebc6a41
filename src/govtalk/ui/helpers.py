"""
Common CLI helper functions for govtalk.

Prompting, credential handling, and Gateway reply formatting shared by
the setup wizard and the message commands.
"""

from __future__ import annotations

import getpass
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from ..client import GovTalkClient, SendResult

__all__ = [
    "confirm_choice",
    "offer_save_credentials",
    "print_gateway_errors",
    "print_send_failure",
    "prompt_credentials",
    "safe_input",
    "safe_read_file",
]


def safe_input(prompt: str) -> str | None:
    """Prompt user for input, returning None on EOF/KeyboardInterrupt.

    Returns:
        Stripped user input, or None if cancelled (Ctrl-C, Ctrl-D).
    """
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def confirm_choice(message: str, default_yes: bool = True) -> bool:
    """
    Prompt user for yes/no confirmation.

    Args:
        message: Question to ask the user (without the [Y/n] suffix).
        default_yes: If True, empty input defaults to yes.

    Returns:
        True if the user confirmed, False otherwise.
    """
    suffix = "[Y/n]" if default_yes else "[y/N]"
    try:
        answer = input(f"{message} {suffix} ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False

    if default_yes:
        return answer in ("", "y", "yes")
    return answer in ("y", "yes")


def safe_read_file(path: Path, kind: str = "file") -> str | None:
    """
    Read a UTF-8 text file with uniform error handling.

    Returns:
        File contents, or None if the file is missing or unreadable.
    """
    if not path.exists():
        print(f"Error: {kind} not found: {path}", file=sys.stderr)
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading {kind}: {e}", file=sys.stderr)
        return None


def prompt_credentials(
    sender_id: str | None = None, password: str | None = None
) -> tuple[str, str]:
    """
    Prompt for the sender ID and/or password interactively.

    Values already supplied are not prompted for.

    Raises:
        SystemExit: If the user cancels or provides empty input.
    """
    if not sender_id:
        try:
            sender_id = input("Gateway sender ID: ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            sys.exit(1)

    if not password:
        try:
            password = getpass.getpass("Gateway password: ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            sys.exit(1)

    if not sender_id or not password:
        print("Error: sender ID and password are required.", file=sys.stderr)
        sys.exit(1)

    return sender_id, password


def offer_save_credentials(sender_id: str, password: str) -> None:
    """Ask the user whether to save credentials; save and report where."""
    from ..config import get_credential_storage_info, save_credentials

    if confirm_choice("\nSave credentials for future use?"):
        secure = save_credentials(sender_id, password)
        print(f"Credentials saved to: {get_credential_storage_info()}")
        if not secure:
            print("  Password stored in plaintext; no usable system keychain was found.")
        print("  (env vars GOVTALK_SENDER_ID/GOVTALK_PASSWORD always take priority)")
    else:
        print("Credentials not saved.")


def print_send_failure(result: SendResult, client: GovTalkClient) -> None:
    """Print a failed exchange and the client's last logged error."""
    print(f"FAILED ({result.failure})", file=sys.stderr)
    if result.message:
        print(f"  {result.message}", file=sys.stderr)
    last = client.get_last_error()
    if last is not None and last.message and last.message != result.message:
        print(f"  {last.message}", file=sys.stderr)


def print_gateway_errors(client: GovTalkClient) -> bool:
    """Print the Gateway-reported errors of the last reply.

    Returns:
        True if any error was printed.
    """
    errors = client.get_response_errors()
    if not errors:
        return False
    for bucket, entries in errors.items():
        for entry in entries:
            where = f" at {entry.location}" if entry.location else ""
            print(f"  [{bucket}] {entry.number}: {entry.text}{where}", file=sys.stderr)
    return True
