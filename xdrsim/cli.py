"""Command-line entry point for the XDR runtime."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import urllib.error
import urllib.request
from datetime import datetime, timezone
from http import HTTPStatus
from urllib.parse import quote

from xdrsim.proxy import run_server

DEFAULT_PORT = 4002

_log = logging.getLogger("xdr")
_core_log = logging.getLogger("xdr_core")


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        fields = {"message": record.getMessage()}
        fields.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc)
        payload = {
            "timestamp": timestamp.isoformat(timespec="microseconds").replace("+00:00", "Z"),
            "level": "WARN" if record.levelname == "WARNING" else record.levelname,
            "fields": fields,
            "target": record.name,
        }
        return json.dumps(payload, ensure_ascii=False, default=str)


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def _global_options(defaults: bool) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-p",
        "--port",
        type=_port,
        default=DEFAULT_PORT if defaults else argparse.SUPPRESS,
        help="Sets the port for the XDR Proxy",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False if defaults else argparse.SUPPRESS,
        help="Enable verbose logging",
    )
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the xdr command."""
    shared = _global_options(defaults=False)
    parser = argparse.ArgumentParser(
        prog="xdr",
        description="x402 Dev Runtime - The Foundry for AI Agents",
        parents=[_global_options(defaults=True)],
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", parents=[shared], help="Start the XDR runtime server")

    chaos = commands.add_parser(
        "chaos", parents=[shared], help="Manage Chaos engineering settings"
    )
    actions = chaos.add_subparsers(dest="action", required=True)
    actions.add_parser("enable", parents=[shared])
    actions.add_parser("disable", parents=[shared])

    status = commands.add_parser(
        "status", parents=[shared], help="Show current status of the runtime"
    )
    status.add_argument("-a", "--agent", required=True, help="The Agent ID to query")
    return parser


def configure_logging(verbose: bool) -> logging.Handler:
    """Send JSON log lines to standard output and return the installed handler."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    return handler


def _status(port: int, agent: str) -> None:
    url = f"http://localhost:{port}/_xdr/status/{quote(agent, safe='')}"
    opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
    try:
        with opener.open(url) as resp:
            print(resp.read().decode("utf-8", errors="replace"))
    except urllib.error.HTTPError as exc:
        try:
            status = f"{exc.code} {HTTPStatus(exc.code).phrase}"
        except ValueError:
            status = str(exc.code)
        print(f"❌ Error [{status}]: Agent '{agent}' not found.", file=sys.stderr)
    except (urllib.error.URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        print(f"❌ Connection failed: {reason}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the xdr command and return its exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "run":
        _core_log.info(
            "Starting XDR Runtime",
            extra={"fields": {"event": "startup", "port": args.port}},
        )
        try:
            asyncio.run(run_server(args.port))
        except KeyboardInterrupt:
            return 0
        except Exception as exc:
            _log.error("Server crashed: %s", exc)
            return 1
    elif args.command == "chaos":
        state = "ENABLED" if args.action == "enable" else "DISABLED"
        _log.info(f"Chaos mode {state}", extra={"fields": {"event": "config_change"}})
    elif args.command == "status":
        _status(args.port, args.agent)
    return 0