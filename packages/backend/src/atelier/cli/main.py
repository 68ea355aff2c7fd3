"""Atelier CLI — run the notification server and watch its streams.

Usage:
    atelier serve                                  # Run the API with uvicorn
    atelier token 42 --role ADMIN                  # Mint a development JWT
    atelier watch --entities attendance,invoice    # Print data-change frames
    atelier stats                                  # Data-change stream counters
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from atelier import __version__
from atelier.realtime.frames import parse_frames

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("ATELIER_API_URL", DEFAULT_API_URL).rstrip("/")


def _token(token: Optional[str]) -> str:
    """Resolve the access token from --token or ATELIER_TOKEN."""
    value = token or os.environ.get("ATELIER_TOKEN")
    if not value:
        click.secho(
            "Error: --token required (or set ATELIER_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return value


def _client(token: str, timeout: Optional[float] = 30.0) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Atelier backend."""
    return httpx.AsyncClient(
        base_url=_api_url(),
        timeout=timeout,
        headers={"Authorization": f"Bearer {token}"},
    )


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. CliRunner inside an async test) by
    offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


_FRAME_COLORS = {
    "created": "green",
    "updated": "yellow",
    "deleted": "red",
}


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="atelier")
def main():
    """Atelier — real-time notification streams for the arts center back office."""


# ---------------------------------------------------------------------------
# atelier serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: ATELIER_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: ATELIER_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from atelier.config import settings

    uvicorn.run(
        "atelier.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# atelier token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id")
@click.option("--role", default="MANAGER", show_default=True, help="User role claim")
@click.option("--email", default=None, help="Email claim")
@click.option("--minutes", default=None, type=int, help="Lifetime in minutes")
def token(user_id: str, role: str, email: Optional[str], minutes: Optional[int]):
    """Mint an access token signed with ATELIER_JWT_SECRET (development only)."""
    from atelier.auth.jwt import create_access_token

    click.echo(create_access_token(user_id, role=role, email=email, expires_minutes=minutes))


# ---------------------------------------------------------------------------
# atelier watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--entities", "-e", default=None, help="Comma-separated entity kinds")
@click.option("--token", "-t", "token_", default=None, help="JWT (or set ATELIER_TOKEN)")
@click.option("--heartbeats", is_flag=True, help="Also print heartbeat frames")
def watch(entities: Optional[str], token_: Optional[str], heartbeats: bool):
    """Follow the data-change stream and print each frame."""
    try:
        _run(_watch_impl(entities, _token(token_), heartbeats))
    except KeyboardInterrupt:
        pass


async def _watch_impl(entities: Optional[str], token: str, heartbeats: bool):
    params = {"entities": entities} if entities else {}

    # No read timeout: the stream is meant to stay open
    async with _client(token, timeout=None) as c:
        async with c.stream("GET", "/api/v1/data-events/stream", params=params) as r:
            if r.status_code != 200:
                await r.aread()
                click.secho(f"Error {r.status_code}: {r.text}", fg="red", err=True)
                sys.exit(1)

            click.secho("Connected. Waiting for events...", bold=True)
            block: list[str] = []
            async for line in r.aiter_lines():
                if line:
                    block.append(line)
                    continue
                for frame in parse_frames("\n".join(block)):
                    _print_frame(frame, heartbeats)
                block = []


def _print_frame(frame, heartbeats: bool) -> None:
    payload = frame.payload()
    if frame.event == "heartbeat":
        if heartbeats:
            click.secho(f"♥ {payload['timestamp']}", dim=True)
        return

    change = payload.get("type", "?")
    click.echo(
        f"{payload.get('timestamp', '')}  "
        + click.style(f"{change:8s}", fg=_FRAME_COLORS.get(change, "white"))
        + f"  {payload.get('entity', '?'):20s}  {payload.get('entityId', '')}"
    )
    if payload.get("data") is not None:
        click.echo(f"    {json.dumps(payload['data'], default=str)}")


# ---------------------------------------------------------------------------
# atelier stats
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", "-t", "token_", default=None, help="JWT (or set ATELIER_TOKEN)")
def stats(token_: Optional[str]):
    """Show data-change stream connection counters."""
    _run(_stats_impl(_token(token_)))


async def _stats_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/api/v1/data-events/stats")
        r.raise_for_status()
        data = r.json()

    click.secho("Data-change streams:", bold=True)
    click.echo(f"  active  {data['activeConnections']}")
    click.echo(f"  peak    {data['peakConnections']}")
    click.echo(f"  opened  {data['totalConnectionsOpened']}")
    click.echo(f"  closed  {data['totalConnectionsClosed']}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
