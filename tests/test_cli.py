import json
import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from xdrsim.cli import JsonFormatter, build_parser, configure_logging, main

AGENT_BODY = json.dumps({"id": "agent-1", "balance_usdc": 100.0})


class _StatusHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/_xdr/status/agent-1":
            body, status = AGENT_BODY.encode(), 200
        else:
            body, status = b"Agent not found", 404
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def status_port():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _StatusHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


def _closed_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_parser_defaults():
    args = build_parser().parse_args(["run"])
    assert args.command == "run"
    assert args.port == 4002
    assert args.verbose is False


def test_global_options_after_subcommand():
    args = build_parser().parse_args(["status", "--agent", "bot", "-p", "5000", "-v"])
    assert args.agent == "bot"
    assert args.port == 5000
    assert args.verbose is True


def test_global_options_before_subcommand():
    args = build_parser().parse_args(["--port", "5001", "chaos", "disable"])
    assert args.port == 5001
    assert args.action == "disable"


@pytest.mark.parametrize(
    "argv", [["chaos"], ["status"], ["run", "-p", "70000"], ["run", "-p", "abc"], []]
)
def test_parser_rejects_bad_arguments(argv):
    with pytest.raises(SystemExit):
        build_parser().parse_args(argv)


def test_json_formatter_shape():
    record = logging.LogRecord(
        "xdr_core", logging.WARNING, __file__, 1, "hello %s", ("world",), None
    )
    record.fields = {"event": "startup"}
    out = json.loads(JsonFormatter().format(record))
    assert out["level"] == "WARN"
    assert out["target"] == "xdr_core"
    assert out["fields"] == {"message": "hello world", "event": "startup"}
    assert out["timestamp"].endswith("Z")


def test_configure_logging_sets_level_and_replaces_handler():
    first = configure_logging(True)
    assert logging.getLogger().level == logging.DEBUG
    second = configure_logging(False)
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert second in root.handlers
    assert first not in root.handlers


@pytest.mark.parametrize("action, state", [("enable", "ENABLED"), ("disable", "DISABLED")])
def test_chaos_logs_config_change(capsys, action, state):
    assert main(["chaos", action]) == 0
    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["fields"]["message"] == f"Chaos mode {state}"
    assert record["fields"]["event"] == "config_change"


def test_status_prints_body(capsys, status_port):
    assert main(["status", "-a", "agent-1", "-p", str(status_port)]) == 0
    captured = capsys.readouterr()
    assert captured.out.strip().splitlines()[-1] == AGENT_BODY


def test_status_reports_missing_agent(capsys, status_port):
    assert main(["status", "-a", "ghost", "-p", str(status_port)]) == 0
    err = capsys.readouterr().err
    assert "❌ Error [404 Not Found]: Agent 'ghost' not found." in err


def test_status_reports_connection_failure(capsys):
    assert main(["status", "-a", "agent-1", "-p", str(_closed_port())]) == 0
    err = capsys.readouterr().err
    assert "❌ Connection failed:" in err