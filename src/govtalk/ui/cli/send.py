"""Message command handlers for the govtalk CLI."""

from __future__ import annotations

import argparse
import re
import sys
import time
from pathlib import Path

from ...api import create_client
from ...client import ExchangeState, GovTalkClient
from ...config import resolve_credentials
from ...errors import ConfigError
from ..helpers import (
    print_gateway_errors,
    print_send_failure,
    prompt_credentials,
    safe_read_file,
)

# Body files are usually complete documents; the envelope supplies its own
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>\s*")

# Upper bound on automatic polling when --wait is given
_MAX_POLLS = 20
_DEFAULT_POLL_INTERVAL = 10


def _make_client(args: argparse.Namespace) -> GovTalkClient:
    """Build a client from CLI options, prompting for missing credentials."""
    sender_id, password = resolve_credentials()
    if not sender_id or not password:
        sender_id, password = prompt_credentials(sender_id or None, password or None)
    try:
        return create_client(
            profile=getattr(args, "profile", None),
            url=getattr(args, "url", None),
            sender_id=sender_id,
            password=password,
            timeout=getattr(args, "timeout", None),
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _parse_key(raw: str) -> tuple[str, str]:
    key_type, sep, value = raw.partition("=")
    if not sep or not key_type:
        print(f"Error: keys are given as TYPE=VALUE, got {raw!r}", file=sys.stderr)
        sys.exit(1)
    return key_type, value


def _report(client: GovTalkClient) -> None:
    """Print the outcome of the last successful exchange."""
    state = client.state
    print(f"  Qualifier:   {client.get_response_qualifier()}")
    correlation_id = client.get_response_correlation_id()
    if correlation_id:
        print(f"  Correlation: {correlation_id}")
    if state is ExchangeState.ACKNOWLEDGED:
        endpoint = client.get_response_endpoint()
        if endpoint is not None:
            print(f"  Poll URL:    {endpoint.url} (every {endpoint.poll_interval}s)")
    if print_gateway_errors(client):
        sys.exit(1)


def _save_response(client: GovTalkClient, path: str | None) -> None:
    if not path:
        return
    xml = client.get_full_xml_response()
    if xml is None:
        return
    try:
        Path(path).write_text(xml, encoding="utf-8")
    except OSError as e:
        print(f"Error writing {path}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"  Response saved to {path}")


def _wait_for_response(client: GovTalkClient) -> None:
    """Poll an acknowledged submission until the Gateway answers or gives up."""
    for _ in range(_MAX_POLLS):
        if client.state is not ExchangeState.ACKNOWLEDGED:
            return
        interval = client.get_response_poll_interval() or _DEFAULT_POLL_INTERVAL
        print(f"  Waiting {interval}s before polling...")
        time.sleep(interval)
        result = client.send_poll_request()
        if not result:
            print_send_failure(result, client)
            sys.exit(1)
    if client.state is ExchangeState.ACKNOWLEDGED:
        print(f"  Still pending after {_MAX_POLLS} polls.", file=sys.stderr)


def cmd_send(args: argparse.Namespace) -> None:
    """Send an XML body file in a GovTalk envelope."""
    body = safe_read_file(Path(args.body), "body")
    if body is None:
        sys.exit(1)

    client = _make_client(args)
    ok = client.set_message_class(args.message_class) and client.set_message_qualifier(
        args.qualifier
    )
    if ok and args.function:
        ok = client.set_message_function(args.function)
    if ok and args.auth:
        ok = client.set_message_authentication(args.auth)
    if ok and args.schema:
        ok = client.set_schema_location(args.schema, True)
    for raw_key in args.key or []:
        if ok:
            ok = client.add_message_key(*_parse_key(raw_key))
    if ok:
        ok = client.set_message_body(_XML_DECLARATION.sub("", body))
    if args.test:
        client.set_test_flag(True)
    if not ok:
        last = client.get_last_error()
        print(f"Error: {last.message if last else 'invalid message settings'}", file=sys.stderr)
        sys.exit(1)

    print(f"Sending {args.message_class} to {client.server_url}...", end=" ", flush=True)
    result = client.send_message()
    if not result:
        print_send_failure(result, client)
        sys.exit(1)
    print("OK")
    if args.wait:
        _wait_for_response(client)
    _save_response(client, args.output)
    _report(client)


def cmd_poll(args: argparse.Namespace) -> None:
    """Poll the Gateway for the outcome of a submission."""
    client = _make_client(args)
    if not client.set_message_class(args.message_class):
        print(f"Error: invalid message class {args.message_class!r}", file=sys.stderr)
        sys.exit(1)
    print(f"Polling {args.correlation_id}...", end=" ", flush=True)
    result = client.send_poll_request(args.correlation_id, args.poll_url)
    if not result:
        print_send_failure(result, client)
        sys.exit(1)
    print("OK")
    _save_response(client, args.output)
    _report(client)


def cmd_delete(args: argparse.Namespace) -> None:
    """Remove a completed submission from the Gateway."""
    client = _make_client(args)
    if args.poll_url and not client.set_server_url(args.poll_url):
        print(f"Error: invalid URL {args.poll_url!r}", file=sys.stderr)
        sys.exit(1)
    print(f"Deleting {args.correlation_id}...", end=" ", flush=True)
    if client.send_delete_request(args.correlation_id, args.message_class):
        print("OK")
        return
    print("FAILED", file=sys.stderr)
    if not print_gateway_errors(client):
        last = client.get_last_error()
        if last is not None:
            print(f"  {last.message}", file=sys.stderr)
    sys.exit(1)


def cmd_list(args: argparse.Namespace) -> None:
    """List the submissions of a message class held by the Gateway."""
    client = _make_client(args)
    records = client.send_list_request(args.message_class)
    if records is None:
        print("List request FAILED", file=sys.stderr)
        print_gateway_errors(client)
        sys.exit(1)
    if not records:
        print("No submissions held.")
        return
    for record in records:
        when = record.timestamp.isoformat(sep=" ") if record.timestamp else "-"
        print(f"  {when}  {record.correlation_id}  {record.status}")
