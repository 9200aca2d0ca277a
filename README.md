# xdrsim

A local development runtime for AI agents that make paid HTTP calls. It runs
a forwarding proxy on your machine. The proxy records every agent it sees in an
in-memory ledger and passes each request on to the real upstream service.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running the proxy

```
xdr run
xdr --port 5000 --verbose run
```

The proxy listens on `127.0.0.1`. It uses port 4002 unless you give another
with `-p`/`--port`. You may give the options before or after the subcommand.
Log records go to standard output as JSON lines, one object per line, with
`timestamp`, `level`, `fields` and `target` keys. `-v`/`--verbose` turns on
debug-level logging. Stop the server with Ctrl-C.

Every proxied request must carry an `X-Agent-Id` header. Without it the proxy
answers with `400 Bad Request`. The proxy finds the upstream in one of two
ways:

- an absolute URL in the request line, as when a client is set up to use the
  proxy, or
- a relative path together with an `X-Upstream-Host` header. The request is
  then sent to `https://<X-Upstream-Host><path>?<query>`.

If neither is present, or the URL is malformed, the proxy answers with
`400 Bad Request`.

```
curl -H "X-Agent-Id: agent-1" -H "X-Upstream-Host: api.openai.com" \
     http://127.0.0.1:4002/v1/models
```

The proxy streams the request and response bodies. It removes hop-by-hop
headers, including `Content-Length`, in both directions. It sets `Host` to the
upstream host and does not follow redirects. If the upstream cannot be
reached, the proxy answers with `502 Bad Gateway`.

The log line for each request names its class: `AIINFERENCE` for hosts that
contain `openai.com` or `anthropic`, `RPC` for hosts that contain `cronos` or
`rpc`, and `UNKNOWN` for all others.

An agent is registered the first time it makes a request. It starts with a
balance of 100.0 USDC, a total spend of 0.0, a payment count of 0, a budget
limit of 10.0, and it is marked active.

## Querying an agent

```
xdr status --agent agent-1
xdr --port 5000 status -a agent-1
```

This prints the agent's ledger state as JSON. It fetches the state with a
`GET` request to `http://localhost:<port>/_xdr/status/<agent_id>` on the
running proxy. If the agent is unknown, the command prints an error with the
HTTP status to standard error. If the proxy cannot be reached, it prints a
connection error there instead.

## Chaos mode

```
xdr chaos enable
xdr chaos disable
```

These commands only write a `config_change` log record saying the mode was
enabled or disabled.

## Library use

```python
from xdrsim.ledger import Ledger
from xdrsim.proxy import (
    classify_request,
    create_app,
    remove_hop_by_hop_headers,
    resolve_upstream_url,
)

ledger = Ledger()
state = ledger.register_or_get("agent-1")
print(state.to_dict())
print(ledger.get_state("nobody"))  # None

url = resolve_upstream_url("/v1/models?limit=1", {"X-Upstream-Host": "api.openai.com"})
print(url)                           # https://api.openai.com/v1/models?limit=1
print(classify_request(url, "GET"))  # RequestType.AI_INFERENCE

print(remove_hop_by_hop_headers({"Connection": "close", "Accept": "*/*"}))
# [('Accept', '*/*')]

app = create_app(ledger)  # an aiohttp web.Application
```

`resolve_upstream_url` raises `UpstreamResolutionError`, a subclass of
`ValueError`, when it cannot work out a URL. `run_server(port)` is a coroutine
that serves a fresh application on `127.0.0.1` until it is cancelled.

## What it does not do

- The ledger only registers agents and reports their state. No payments are
  made and no balances are debited or credited, so the spending fields keep
  their starting values. `RequestType.PAYMENT` exists but no request is
  classified as a payment.
- The ledger lives in memory and is lost when the proxy stops.
- Chaos mode does not inject faults or change how the proxy behaves. The
  `xdrsim.chaos` and `xdrsim.trace` modules each provide only an
  `add(left, right)` helper.