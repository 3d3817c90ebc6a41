"""
Command-line interface for govtalk.

Argument parsing, dispatch, and configuration subcommands.
Message exchange logic lives in ``send``.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ...config import BUILTIN_PROFILES, get_server_config
from ...constants import AUTH_TYPES, QUALIFIERS, __version__
from .send import cmd_delete, cmd_list, cmd_poll, cmd_send
from .setup import cmd_setup


def _cmd_logout() -> None:
    """Clear credentials and sender email, keeping Gateway configuration."""
    from ...config import logout

    logout()
    print("Logged out. Gateway configuration preserved.")
    print("Run 'govtalk setup' to log in again.")


def _cmd_reset() -> None:
    """Clear all configuration: credentials, sender email, and Gateway profile."""
    from ...config import reset_all

    reset_all()
    print("All configuration cleared.")
    print("Run 'govtalk setup' to reconfigure.")


def _add_gateway_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--profile",
        default=None,
        help=f"Built-in Gateway profile ({', '.join(sorted(BUILTIN_PROFILES))})",
    )
    group.add_argument("--url", default=None, help="Custom Gateway URL")
    parser.add_argument("--timeout", type=int, default=None, help="Timeout in seconds")


def build_parser() -> argparse.ArgumentParser:
    url, _, _ = get_server_config()
    url_hint = f" (current: {url})" if url else " (run `govtalk setup` first)"

    parser = argparse.ArgumentParser(
        prog="govtalk",
        description="Client for UK Government Gateway GovTalk envelopes.",
        epilog=(
            "Environment variables:\n"
            "  GOVTALK_SENDER_ID  Gateway sender ID\n"
            "  GOVTALK_PASSWORD   Gateway password\n"
            f"  GOVTALK_URL        Gateway URL{url_hint}\n"
            "  GOVTALK_TIMEOUT    Timeout in seconds (default: 60)\n"
            "  GOVTALK_EMAIL      Sender email address\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"govtalk {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False, help="Log Gateway exchanges"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # send
    p_send = sub.add_parser("send", help="Send an XML body in a GovTalk envelope")
    p_send.add_argument("body", help="XML file holding the message body")
    p_send.add_argument("-c", "--class", dest="message_class", required=True, help="Message class")
    p_send.add_argument(
        "-q",
        "--qualifier",
        default="request",
        choices=sorted(QUALIFIERS),
        help="Message qualifier (default: request)",
    )
    p_send.add_argument("-f", "--function", default="submit", help="Message function")
    p_send.add_argument(
        "-a", "--auth", choices=sorted(AUTH_TYPES), default=None, help="Authentication type"
    )
    p_send.add_argument(
        "-k", "--key", action="append", metavar="TYPE=VALUE", help="Message key (repeatable)"
    )
    p_send.add_argument("--schema", default=None, help="Validate against this schema URL")
    p_send.add_argument("--test", action="store_true", default=False, help="Set the test flag")
    p_send.add_argument(
        "-w",
        "--wait",
        action="store_true",
        default=False,
        help="Poll until the Gateway returns a response",
    )
    p_send.add_argument("-o", "--output", default=None, help="Save the raw reply to this file")
    _add_gateway_options(p_send)

    # poll
    p_poll = sub.add_parser("poll", help="Poll for the outcome of a submission")
    p_poll.add_argument("correlation_id", help="Correlation ID from the acknowledgement")
    p_poll.add_argument("-c", "--class", dest="message_class", required=True, help="Message class")
    p_poll.add_argument("--poll-url", default=None, help="Poll endpoint URL")
    p_poll.add_argument("-o", "--output", default=None, help="Save the raw reply to this file")
    _add_gateway_options(p_poll)

    # delete
    p_delete = sub.add_parser("delete", help="Delete a completed submission from the Gateway")
    p_delete.add_argument("correlation_id", help="Correlation ID of the submission")
    p_delete.add_argument(
        "-c", "--class", dest="message_class", required=True, help="Message class"
    )
    p_delete.add_argument("--poll-url", default=None, help="Endpoint URL")
    _add_gateway_options(p_delete)

    # list
    p_list = sub.add_parser("list", help="List submissions held by the Gateway")
    p_list.add_argument("-c", "--class", dest="message_class", required=True, help="Message class")
    _add_gateway_options(p_list)

    # setup
    p_setup = sub.add_parser("setup", help="Configure Gateway, credentials, and sender email")
    p_setup.add_argument(
        "--profile",
        default=None,
        help=f"Use a built-in Gateway profile ({', '.join(sorted(BUILTIN_PROFILES))})",
    )

    # logout
    sub.add_parser("logout", help="Log out (clear credentials, keep Gateway)")

    # reset
    sub.add_parser("reset", help="Clear all configuration")

    return parser


def main(argv: list[str] | None = None) -> None:
    from ...config import migrate_plaintext_password

    migrate_plaintext_password()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "send":
        cmd_send(args)
    elif args.command == "poll":
        cmd_poll(args)
    elif args.command == "delete":
        cmd_delete(args)
    elif args.command == "list":
        cmd_list(args)
    elif args.command == "setup":
        cmd_setup(args)
    elif args.command == "logout":
        _cmd_logout()
    elif args.command == "reset":
        _cmd_reset()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
