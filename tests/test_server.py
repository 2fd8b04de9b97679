"""End to end tests of the jam server over a WebSocket."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest
from aiohttp.test_utils import TestClient

from aiojam.client import JamClient
from aiojam.models import PROTOCOL_VERSION, PlayStatus, RatingValue, ServerMessage, SessionSnapshot
from aiojam.models.core import ServerErrorMessage, ServerHelloMessage, SessionStateMessage
from aiojam.server import ClientAddedEvent, JamServer, ServerEvent
from aiojam.session import JamSessionState


@pytest.fixture
async def server():
    loop = asyncio.get_running_loop()
    jam_server = JamServer(loop, "test-server", "Test Jam", JamSessionState(loop=loop))
    yield jam_server
    await jam_server.close()


@pytest.fixture
async def http_client(server, aiohttp_client) -> TestClient:
    return await aiohttp_client(server.create_app())


async def receive(ws) -> ServerMessage:
    async with asyncio.timeout(5):
        return ServerMessage.from_json(await ws.receive_str())


def hello(user_id: str | None = None) -> dict:
    payload = {"client_id": "c1", "name": "Test", "version": PROTOCOL_VERSION}
    if user_id is not None:
        payload["user_id"] = user_id
    return {"type": "client/hello", "payload": payload}


async def handshake(http_client: TestClient, user_id: str | None = "alice"):
    ws = await http_client.ws_connect("/jam")
    await ws.send_json(hello(user_id))
    assert isinstance(await receive(ws), ServerHelloMessage)
    assert isinstance(await receive(ws), SessionStateMessage)
    return ws


class TestProtocol:
    async def test_hello_returns_server_info_and_state(self, http_client):
        ws = await http_client.ws_connect("/jam")
        await ws.send_json(hello("alice"))

        server_hello = await receive(ws)
        state = await receive(ws)

        assert isinstance(server_hello, ServerHelloMessage)
        assert server_hello.payload.server_id == "test-server"
        assert server_hello.payload.version == PROTOCOL_VERSION
        assert isinstance(state, SessionStateMessage)
        assert state.payload.songs == ()
        await ws.close()

    async def test_commands_before_hello_are_rejected(self, http_client):
        ws = await http_client.ws_connect("/jam")
        await ws.send_json({"type": "session/get-state"})

        error = await receive(ws)

        assert isinstance(error, ServerErrorMessage)
        assert "client/hello" in error.payload.message
        await ws.close()

    async def test_invalid_message_reports_error(self, http_client):
        ws = await handshake(http_client)
        await ws.send_str('{"type": "song/explode"}')

        error = await receive(ws)

        assert isinstance(error, ServerErrorMessage)
        assert error.payload.request_type is None
        await ws.close()

    async def test_mutations_broadcast_new_state(self, http_client, server):
        ws = await handshake(http_client)

        await ws.send_json({"type": "participant/join", "payload": {"name": "Alice"}})
        state = await receive(ws)
        assert isinstance(state, SessionStateMessage)
        assert [p.user_id for p in state.payload.participants] == ["alice"]

        await ws.send_json(
            {
                "type": "song/submit",
                "payload": {"owner_user_id": "alice", "title": "Creep", "artist": "Radiohead"},
            }
        )
        state = await receive(ws)
        assert isinstance(state, SessionStateMessage)
        song = state.payload.queue()[0]
        assert song.title == "Creep"
        assert song.chooser_user_id == "alice"
        assert server.state.snapshot.queue_ids == (song.id,)
        await ws.close()

    async def test_rejected_command_names_request_type(self, http_client, server):
        ws = await handshake(http_client)

        await ws.send_json({"type": "song/delete", "payload": {"song_id": "missing"}})
        error = await receive(ws)

        assert isinstance(error, ServerErrorMessage)
        assert error.payload.request_type == "song/delete"
        assert "missing" in error.payload.message
        assert server.state.snapshot.songs == ()
        await ws.close()

    async def test_submit_requires_user_id(self, http_client):
        ws = await handshake(http_client, user_id=None)

        await ws.send_json(
            {
                "type": "song/submit",
                "payload": {"owner_user_id": "alice", "title": "Creep", "artist": "Radiohead"},
            }
        )
        error = await receive(ws)

        assert isinstance(error, ServerErrorMessage)
        assert "user_id" in error.payload.message
        await ws.close()

    async def test_state_is_broadcast_to_every_client(self, http_client):
        first = await handshake(http_client)
        second = await handshake(http_client, user_id="bob")

        await first.send_json({"type": "participant/join", "payload": {"name": "Alice"}})

        for ws in (first, second):
            state = await receive(ws)
            assert isinstance(state, SessionStateMessage)
            assert len(state.payload.participants) == 1
        await first.close()
        await second.close()

    async def test_server_events(self, http_client, server):
        events: list[ServerEvent] = []

        async def listener(event: ServerEvent) -> None:
            events.append(event)

        server.add_event_listener(listener)
        ws = await handshake(http_client)
        await asyncio.sleep(0)

        assert events == [ClientAddedEvent("c1")]
        assert len(server.connections) == 1
        await ws.close()


async def wait_for_snapshot(
    client: JamClient, predicate: Callable[[SessionSnapshot], bool]
) -> SessionSnapshot:
    async with asyncio.timeout(5):
        while client.snapshot is None or not predicate(client.snapshot):
            await asyncio.sleep(0.01)
    return client.snapshot


class TestJamClient:
    async def test_full_session(self, http_client):
        url = str(http_client.make_url("/jam"))
        errors = []
        async with JamClient("phone", "Phone", user_id="alice") as client:
            client.add_error_listener(errors.append)
            await client.connect(url)
            assert client.server_info is not None
            assert client.server_info.name == "Test Jam"

            await client.join("Alice", arrival_time=100)
            await client.join("Bob", arrival_time=200)
            await client.submit_song("alice", "A1", "x")
            await client.submit_song("alice", "A2", "x")
            await client.submit_song("bob", "B1", "x")
            snapshot = await wait_for_snapshot(client, lambda s: len(s.queue_ids) == 3)
            assert [s.title for s in snapshot.queue()] == ["A1", "B1", "A2"]

            a2 = snapshot.queue()[2]
            await client.move_song(a2.id, 0)
            snapshot = await wait_for_snapshot(client, lambda s: s.queue_ids[0] == a2.id)
            assert snapshot.get_song(a2.id).is_stolen

            first = snapshot.queue()[0]
            await client.set_status(first.id, PlayStatus.PLAYED)
            await client.rate(first.id, RatingValue.HIGHLIGHT)
            snapshot = await wait_for_snapshot(client, lambda s: len(s.ratings) == 1)
            assert first.id not in snapshot.queue_ids
            assert snapshot.ratings[0].user_id == "alice"

            await client.revive("missing")
            async with asyncio.timeout(5):
                while not errors:
                    await asyncio.sleep(0.01)
            assert errors[0].request_type == "song/revive"

        assert not client.connected
