"""Command-line interface for hosting and joining jam sessions."""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import signal
import sys
import uuid
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from zeroconf import ServiceListener

import aioconsole
from aiohttp import ClientError
from zeroconf.asyncio import AsyncServiceBrowser, AsyncZeroconf

from aiojam.client import JamClient
from aiojam.models import JamSession, PlayStatus, RatingValue, SessionSnapshot, Song
from aiojam.models.core import ServerErrorPayload
from aiojam.server import DEFAULT_PATH, DEFAULT_PORT, SERVICE_TYPE, JamServer
from aiojam.session import JamSessionState, parse_arrival_time, user_id_for
from aiojam.stats import crowd_pleasers, leaderboard, taste_similarity

logger = logging.getLogger(__name__)

RATING_ALIASES = {
    "highlight": RatingValue.HIGHLIGHT,
    "sababa": RatingValue.SABABA,
    "ok": RatingValue.NO_COMMENT,
    "bad": RatingValue.NEEDS_WORK,
}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    parser = argparse.ArgumentParser(description="Host or join an aiojam session")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=log_levels,
        help="Logging level to use",
    )
    # Also accepted after the subcommand, only overrides when given
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        default=argparse.SUPPRESS,
        choices=log_levels,
        help="Logging level to use",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", parents=[common], help="Host a jam session")
    serve.add_argument("--host", default="0.0.0.0", help="Address to listen on")  # noqa: S104
    serve.add_argument("--port", type=int, default=DEFAULT_PORT, help="Port to listen on")
    serve.add_argument("--path", default=DEFAULT_PATH, help="WebSocket path")
    serve.add_argument("--name", default="aiojam", help="Friendly name for this server")
    serve.add_argument("--id", default=None, help="Unique identifier for this server")
    serve.add_argument(
        "--date",
        default=None,
        help="Session date as YYYY-MM-DD, defaults to today",
    )
    serve.add_argument(
        "--no-mdns",
        action="store_true",
        help="Do not advertise the server on the local network",
    )

    connect = subparsers.add_parser(
        "connect", parents=[common], help="Join a jam session interactively"
    )
    connect.add_argument(
        "--url",
        default=None,
        help="WebSocket URL of the jam server. If omitted, discover via mDNS.",
    )
    connect.add_argument("--name", required=True, help="Your display name")
    connect.add_argument("--id", default=None, help="Unique identifier for this client")
    return parser.parse_args(argv)


def _build_service_url(host: str, port: int, properties: dict[bytes, bytes | None]) -> str:
    """Construct WebSocket URL from mDNS service info."""
    path_raw = properties.get(b"path")
    path = path_raw.decode("utf-8", "ignore") if isinstance(path_raw, bytes) else DEFAULT_PATH
    if not path:
        path = DEFAULT_PATH
    if not path.startswith("/"):
        path = "/" + path
    host_fmt = f"[{host}]" if ":" in host else host
    return f"ws://{host_fmt}:{port}{path}"


class _ServiceDiscoveryListener:
    """Listens for jam server advertisements via mDNS."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._first_result: asyncio.Future[str] = loop.create_future()
        self.tasks: set[asyncio.Task[None]] = set()

    async def wait_for_first(self) -> str:
        """Wait for the first server to be discovered."""
        return await self._first_result

    async def _process_service_info(
        self, zeroconf: AsyncZeroconf, service_type: str, name: str
    ) -> None:
        info = await zeroconf.async_get_service_info(service_type, name)
        if info is None or info.port is None:
            return
        addresses = info.parsed_addresses()
        if not addresses:
            return
        url = _build_service_url(addresses[0], info.port, info.properties)
        if not self._first_result.done():
            self._first_result.set_result(url)

    def _schedule(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        task = self._loop.create_task(self._process_service_info(zeroconf, service_type, name))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    def add_service(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        self._schedule(zeroconf, service_type, name)

    def update_service(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        self._schedule(zeroconf, service_type, name)

    def remove_service(self, _zeroconf: AsyncZeroconf, _service_type: str, _name: str) -> None:
        """Servers going away are noticed through the WebSocket instead."""


async def discover_server() -> str:
    """Wait until a jam server is announced on the local network and return its URL."""
    listener = _ServiceDiscoveryListener(asyncio.get_running_loop())
    async with AsyncZeroconf() as azc:
        browser = AsyncServiceBrowser(
            azc.zeroconf, SERVICE_TYPE, cast("ServiceListener", listener)
        )
        try:
            return await listener.wait_for_first()
        finally:
            await browser.async_cancel()


def format_queue(snapshot: SessionSnapshot) -> str:
    """Return a human-friendly listing of the queue."""
    lines: list[str] = []
    for position, song in enumerate(snapshot.queue(), start=1):
        marker = ">" if song.play_status is PlayStatus.PLAYING else " "
        stolen = " [stolen]" if song.is_stolen else ""
        lines.append(
            f"{marker}{position:>2}. {song.title} - {song.artist} ({song.owner_name})"
            f"{stolen}  #{song.id[:6]}"
        )
    return "\n".join(lines) if lines else "Queue is empty"


def format_stats(snapshot: SessionSnapshot) -> str:
    """Return a human-friendly summary of the ratings so far."""
    names = {p.user_id: p.name for p in snapshot.participants}
    lines = ["Leaderboard:"]
    for scored in leaderboard(snapshot.songs, snapshot.ratings):
        assert scored.song is not None
        lines.append(f"  {scored.score:>3}  {scored.song.title} ({scored.total_votes} votes)")
    lines.append("Crowd pleasers:")
    lines.extend(
        f"  {owner.avg_score:>3}  {names.get(owner.user_id, owner.user_id)} ({owner.song_count})"
        for owner in crowd_pleasers(snapshot.songs, snapshot.ratings)
    )
    lines.append("Taste twins:")
    lines.extend(
        f"  {pair.score:>3}%  {names.get(pair.user_a, pair.user_a)}"
        f" & {names.get(pair.user_b, pair.user_b)}"
        for pair in taste_similarity(snapshot.ratings)
    )
    return "\n".join(lines)


def resolve_song(snapshot: SessionSnapshot, ref: str) -> Song:
    """Find a song by 1-based queue position or id prefix."""
    if ref.isdigit():
        queue = snapshot.queue()
        position = int(ref)
        if not 1 <= position <= len(queue):
            raise ValueError(f"No song at position {position}")
        return queue[position - 1]
    matches = [s for s in snapshot.songs if s.id.startswith(ref.lstrip("#"))]
    if len(matches) != 1:
        raise ValueError(f"'{ref}' does not identify exactly one song")
    return matches[0]


async def _run_command(client: JamClient, line: str) -> bool:  # noqa: PLR0911, PLR0912
    """Execute one console command, return False to quit."""
    parts = shlex.split(line)
    keyword = parts[0].lower()
    args = parts[1:]
    snapshot = client.snapshot
    if snapshot is None:
        raise ValueError("No session state received yet")

    if keyword in {"quit", "exit", "q"}:
        return False
    if keyword in {"queue", "ls"}:
        _print_event(format_queue(snapshot))
    elif keyword == "stats":
        _print_event(format_stats(snapshot))
    elif keyword == "join" and args:
        arrival = parse_arrival_time(snapshot.session.date, args[1]) if len(args) > 1 else None
        await client.join(args[0], user_id=user_id_for(args[0]), arrival_time=arrival)
    elif keyword == "add" and len(args) >= 3:  # noqa: PLR2004
        link = args[3] if len(args) > 3 else None  # noqa: PLR2004
        await client.submit_song(user_id_for(args[0]), args[1], args[2], chord_link=link)
    elif keyword == "play" and args:
        await client.set_status(resolve_song(snapshot, args[0]).id, PlayStatus.PLAYING)
    elif keyword == "done" and args:
        await client.set_status(resolve_song(snapshot, args[0]).id, PlayStatus.PLAYED)
    elif keyword == "move" and len(args) == 2:  # noqa: PLR2004
        await client.move_song(resolve_song(snapshot, args[0]).id, int(args[1]) - 1)
    elif keyword == "unsteal" and args:
        await client.unsteal(resolve_song(snapshot, args[0]).id)
    elif keyword == "rm" and args:
        await client.delete_song(resolve_song(snapshot, args[0]).id)
    elif keyword == "revive" and args:
        await client.revive(resolve_song(snapshot, args[0]).id)
    elif keyword == "rate" and len(args) == 2 and args[1].lower() in RATING_ALIASES:  # noqa: PLR2004
        await client.rate(resolve_song(snapshot, args[0]).id, RATING_ALIASES[args[1].lower()])
    else:
        _print_instructions()
    return True


async def _keyboard_loop(client: JamClient) -> None:
    try:
        while client.connected:
            try:
                line = await aioconsole.ainput()
            except EOFError:
                break
            if not line.strip():
                continue
            try:
                if not await _run_command(client, line):
                    break
            except ValueError as err:
                _print_event(str(err))
    except asyncio.CancelledError:
        # Graceful shutdown on Ctrl+C
        logger.debug("Keyboard loop cancelled, exiting gracefully")
        raise


async def connect_async(args: argparse.Namespace) -> int:
    """Join a session and run the interactive console."""
    user_id = user_id_for(args.name)
    client = JamClient(
        client_id=args.id or f"{user_id}-{uuid.uuid4().hex[:6]}",
        client_name=args.name,
        user_id=user_id,
    )

    url = args.url
    if url is None:
        _print_event("Searching for jam server...")
        url = await discover_server()
        _print_event(f"Found server at {url}")

    async def on_state(snapshot: SessionSnapshot) -> None:
        _print_event(format_queue(snapshot))

    async def on_error(payload: ServerErrorPayload) -> None:
        _print_event(f"Error: {payload.message}")

    client.add_state_listener(on_state)
    client.add_error_listener(on_error)

    try:
        await client.connect(url)
    except (TimeoutError, OSError, ClientError) as err:
        logger.debug("Connection error: %s", err)
        _print_event(f"Could not connect to {url}")
        return 1

    async with client:
        await client.join(args.name, user_id=user_id)
        _print_instructions()
        keyboard_task = asyncio.create_task(_keyboard_loop(client))
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, keyboard_task.cancel)
        try:
            await keyboard_task
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            logger.debug("Keyboard loop cancelled")
        finally:
            loop.remove_signal_handler(signal.SIGINT)
    return 0


async def serve_async(args: argparse.Namespace) -> int:
    """Host a session until interrupted."""
    loop = asyncio.get_running_loop()
    session = JamSession(id=uuid.uuid4().hex, date=args.date or date.today().isoformat())
    server = JamServer(
        loop,
        server_id=args.id or f"aiojam-{session.id[:8]}",
        server_name=args.name,
        state=JamSessionState(session, loop=loop),
    )
    await server.start(args.host, args.port, args.path, advertise=not args.no_mdns)
    _print_event(f"Hosting jam session for {session.date} on port {args.port}")

    stop_event = asyncio.Event()
    loop.add_signal_handler(signal.SIGINT, stop_event.set)
    loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        loop.remove_signal_handler(signal.SIGTERM)
        await server.close()
    return 0


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous CLI workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))
    if args.command == "serve":
        return await serve_async(args)
    return await connect_async(args)


def _print_event(message: str) -> None:
    print(message, flush=True)  # noqa: T201


def _print_instructions() -> None:
    print(  # noqa: T201
        (
            "Commands: queue(ls), join <name> [HH:MM], add <owner> <title> <artist> [link],\n"
            "  play <n>, done <n>, move <n> <position>, unsteal <n>, rm <n>, revive <id>,\n"
            "  rate <id> highlight|sababa|ok|bad, stats, quit(q)"
        ),
        flush=True,
    )


def main() -> int:
    """Run the CLI."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
