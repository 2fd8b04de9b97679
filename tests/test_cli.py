"""Tests for the console helpers."""

import pytest

from aiojam.cli import _build_service_url, _run_command, format_queue, parse_args, resolve_song
from aiojam.client import JamClient
from aiojam.models import JamSession, SessionSnapshot

from .conftest import make_song


@pytest.fixture
def snapshot():
    songs = (make_song("abc123", "alice", 1, stolen=True), make_song("def456", "bob", 2))
    return SessionSnapshot(
        session=JamSession(id="session", date="2024-05-01"),
        songs=songs,
        queue_ids=("abc123", "def456"),
    )


def test_parse_serve_defaults():
    args = parse_args(["serve", "--no-mdns"])

    assert args.command == "serve"
    assert args.port == 8927
    assert args.path == "/jam"
    assert args.no_mdns


def test_connect_requires_name():
    with pytest.raises(SystemExit):
        parse_args(["connect"])


def test_log_level_after_subcommand():
    assert parse_args(["serve", "--log-level", "DEBUG"]).log_level == "DEBUG"
    assert parse_args(["--log-level", "WARNING", "connect", "--name", "A"]).log_level == "WARNING"
    assert parse_args(["connect", "--name", "A"]).log_level == "INFO"


async def test_command_before_first_state_is_rejected():
    client = JamClient("phone", "Phone")

    with pytest.raises(ValueError, match="No session state"):
        await _run_command(client, "ls")


@pytest.mark.parametrize(
    ("host", "properties", "expected"),
    [
        ("192.168.1.2", {b"path": b"/jam"}, "ws://192.168.1.2:8927/jam"),
        ("192.168.1.2", {b"path": b"custom"}, "ws://192.168.1.2:8927/custom"),
        ("fe80::1", {}, "ws://[fe80::1]:8927/jam"),
    ],
)
def test_build_service_url(host, properties, expected):
    assert _build_service_url(host, 8927, properties) == expected


def test_format_queue_marks_stolen_songs(snapshot):
    lines = format_queue(snapshot).splitlines()

    assert "[stolen]" in lines[0]
    assert "(Alice)" in lines[0]
    assert "[stolen]" not in lines[1]


def test_resolve_song_by_position_or_prefix(snapshot):
    assert resolve_song(snapshot, "2").id == "def456"
    assert resolve_song(snapshot, "#abc").id == "abc123"

    with pytest.raises(ValueError, match="position 3"):
        resolve_song(snapshot, "3")
    with pytest.raises(ValueError, match="exactly one"):
        resolve_song(snapshot, "zzz")
