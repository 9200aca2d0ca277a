"""HTTP forwarding proxy that registers calling agents in the ledger."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from enum import Enum
from typing import Union
from urllib.parse import urlsplit

from aiohttp import ClientError, ClientSession, ClientTimeout, DummyCookieJar, web

from xdrsim.ledger import Ledger

HEADER_UPSTREAM_HOST = "x-upstream-host"
HEADER_AGENT_ID = "x-agent-id"

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        # The body is streamed, so its length may change or become chunked.
        "content-length",
    }
)

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]]]

_core_log = logging.getLogger("xdr_core")
_proxy_log = logging.getLogger("xdr_proxy")

LEDGER_KEY = web.AppKey("ledger", Ledger)
CLIENT_KEY = web.AppKey("client", ClientSession)


class RequestType(Enum):
    """Coarse classification of a forwarded request."""

    AI_INFERENCE = "AIINFERENCE"
    PAYMENT = "PAYMENT"
    RPC = "RPC"
    UNKNOWN = "UNKNOWN"


class UpstreamResolutionError(ValueError):
    """Raised when the upstream URL of a request cannot be determined."""


def _header_items(headers: HeaderSource | None) -> Iterable[tuple[str, str]]:
    if headers is None:
        return ()
    if isinstance(headers, Mapping) or hasattr(headers, "items"):
        return headers.items()
    return headers


def _find_header(headers: HeaderSource | None, name: str) -> str | None:
    return next(
        (value for key, value in _header_items(headers) if key.lower() == name),
        None,
    )


def _validated(url: str, message: str) -> str:
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise UpstreamResolutionError(message) from exc
    if (
        not parts.scheme
        or not parts.hostname
        or any(ch.isspace() for ch in parts.netloc)
    ):
        raise UpstreamResolutionError(message)
    return parts._replace(path=parts.path or "/").geturl()


def resolve_upstream_url(target: str, headers: HeaderSource | None = None) -> str:
    """Work out the upstream URL from a request target and its headers.

    An absolute target is used as is; a relative one is joined onto the host
    given in the X-Upstream-Host header, over HTTPS.
    """
    parts = urlsplit(target)
    if parts.scheme and parts.netloc:
        return _validated(target, "Invalid Absolute URL")

    upstream_host = _find_header(headers, HEADER_UPSTREAM_HOST)
    if upstream_host is None:
        raise UpstreamResolutionError("Missing X-Upstream-Host header or Absolute URL")

    query = f"?{parts.query}" if parts.query else ""
    return _validated(
        f"https://{upstream_host}{parts.path}{query}", "Invalid Constructed URL"
    )


def classify_request(url: str, method: str) -> RequestType:
    """Classify a request by the host it is sent to."""
    host = urlsplit(url).hostname or ""
    if "openai.com" in host or "anthropic" in host:
        return RequestType.AI_INFERENCE
    if "cronos" in host or "rpc" in host:
        return RequestType.RPC
    return RequestType.UNKNOWN


def remove_hop_by_hop_headers(headers: HeaderSource) -> list[tuple[str, str]]:
    """Return the header pairs without hop-by-hop headers, keeping order and repeats."""
    return [
        (name, value)
        for name, value in _header_items(headers)
        if name.lower() not in HOP_BY_HOP_HEADERS
    ]


async def _client_session(app: web.Application) -> AsyncIterator[None]:
    async with ClientSession(
        auto_decompress=False,
        cookie_jar=DummyCookieJar(),
        timeout=ClientTimeout(total=None),
    ) as session:
        app[CLIENT_KEY] = session
        yield


async def _agent_status(request: web.Request) -> web.StreamResponse:
    state = request.app[LEDGER_KEY].get_state(request.match_info["agent_id"])
    if state is None:
        return web.Response(status=404, text="Agent not found")
    return web.json_response(state.to_dict())


async def _proxy(request: web.Request) -> web.StreamResponse:
    started = time.monotonic()

    agent_id = request.headers.get(HEADER_AGENT_ID)
    if agent_id is None:
        _proxy_log.warning("⚠️ Rejected request missing %s", HEADER_AGENT_ID)
        return web.Response(
            status=400, text=f"Missing mandatory header: {HEADER_AGENT_ID}"
        )

    request.app[LEDGER_KEY].register_or_get(agent_id)

    try:
        upstream_url = resolve_upstream_url(request.raw_path, request.headers)
    except UpstreamResolutionError as exc:
        _proxy_log.warning("Resolution failed: %s", exc)
        return web.Response(status=400, text=str(exc))

    req_type = classify_request(upstream_url, request.method)
    _proxy_log.info(
        "➡️  [%s] %s %s (Agent: %s)",
        req_type.value,
        request.method,
        upstream_url,
        agent_id,
    )

    forward_headers = [
        (name, value)
        for name, value in remove_hop_by_hop_headers(request.headers)
        if name.lower() != "host"
    ]
    host = urlsplit(upstream_url).hostname
    if host:
        forward_headers.append(("Host", f"[{host}]" if ":" in host else host))

    session = request.app[CLIENT_KEY]
    try:
        async with session.request(
            request.method,
            upstream_url,
            headers=forward_headers,
            data=request.content if request.body_exists else None,
            allow_redirects=False,
        ) as upstream:
            response = web.StreamResponse(
                status=upstream.status,
                reason=upstream.reason,
                headers=remove_hop_by_hop_headers(upstream.headers),
            )
            await response.prepare(request)
            async for chunk in upstream.content.iter_any():
                await response.write(chunk)
            await response.write_eof()
            _proxy_log.info(
                "⬅️  [%d %s] %s (%dms)",
                upstream.status,
                upstream.reason or "",
                upstream_url,
                int((time.monotonic() - started) * 1000),
                extra={"fields": {"agent_id": agent_id}},
            )
            return response
    except (ClientError, asyncio.TimeoutError) as exc:
        _proxy_log.error("Upstream error: %s", exc)
        return web.Response(status=502, text=f"Upstream Error: {exc}")


def create_app(ledger: Ledger | None = None) -> web.Application:
    """Build the proxy application around the given ledger."""
    app = web.Application()
    app[LEDGER_KEY] = ledger if ledger is not None else Ledger()
    app.cleanup_ctx.append(_client_session)
    app.router.add_get("/_xdr/status/{agent_id}", _agent_status)
    app.router.add_route("*", "/{path:.*}", _proxy)
    return app


async def run_server(port: int) -> None:
    """Serve the proxy on 127.0.0.1 at the given port until cancelled."""
    runner = web.AppRunner(create_app())
    await runner.setup()
    try:
        site = web.TCPSite(runner, "127.0.0.1", port)
        await site.start()
        _core_log.info("🚀 XDR Proxy listening on http://127.0.0.1:%d", port)
        _core_log.info("ℹ️  Config: Set X-Upstream-Host or use Absolute URLs")
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()