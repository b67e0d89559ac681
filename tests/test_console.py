import asyncio
import struct
import pytest
from uuid import uuid4

from mcfleet.domain.errors import ProtocolError
from mcfleet.services.console import (
    MAX_REQUEST_ID,
    PACKET_AUTH,
    PACKET_COMMAND,
    PACKET_RESPONSE,
    ConsoleClient,
    ConsoleSessions,
    SessionState,
    decode_packet,
    encode_packet,
)

PASSWORD = "s3cret"


class FakeConsoleServer:
    """
    Minimal remote console server on localhost.

    ``mode`` controls how commands are answered: "echo" replies with the
    command text, "stale" sends a reply with an old id first, "silent" never
    replies, "hangup" closes the connection, "split" sends the reply to
    "slow" in two parts with a pause between them and "garbage" answers with
    an unframeable length prefix.
    """

    def __init__(self, password=PASSWORD, mode="echo"):
        self.password = password
        self.mode = mode
        self.commands = []
        self.server = None
        self.port = None

    async def __aenter__(self):
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc):
        self.server.close()
        await self.server.wait_closed()

    async def handle(self, reader, writer):
        try:
            while True:
                header = await reader.readexactly(4)
                (length,) = struct.unpack("<i", header)
                packet = decode_packet(header + await reader.readexactly(length))

                if packet.type == PACKET_AUTH:
                    reply_id = packet.request_id if packet.body == self.password else -1
                    writer.write(encode_packet(reply_id, PACKET_COMMAND, ""))
                elif packet.type == PACKET_COMMAND:
                    self.commands.append(packet.body)
                    if self.mode == "silent":
                        continue
                    if self.mode == "hangup":
                        writer.close()
                        return
                    if self.mode == "garbage":
                        writer.write(struct.pack("<i", 2) + b"\x00\x00")
                        await writer.drain()
                        continue
                    if self.mode == "split" and packet.body == "slow":
                        reply = encode_packet(packet.request_id, PACKET_RESPONSE, "ran slow")
                        writer.write(reply[:4])
                        await writer.drain()
                        await asyncio.sleep(0.5)
                        writer.write(reply[4:])
                        await writer.drain()
                        continue
                    if self.mode == "stale":
                        writer.write(encode_packet(packet.request_id - 1, PACKET_RESPONSE, "old"))
                    writer.write(encode_packet(packet.request_id, PACKET_RESPONSE, f"ran {packet.body}"))
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


def test_encode_packet_layout():
    data = encode_packet(7, PACKET_COMMAND, "list")

    assert struct.unpack_from("<iii", data) == (14, 7, PACKET_COMMAND)
    assert data[12:] == b"list\x00\x00"


def test_decode_rejects_short_and_oversized_packets():
    with pytest.raises(ProtocolError):
        decode_packet(b"\x0a\x00\x00\x00\x01")
    with pytest.raises(ProtocolError):
        decode_packet(struct.pack("<iii", 5000, 1, 0) + b"\x00\x00")


def test_request_ids_wrap_to_one():
    client = ConsoleClient("127.0.0.1", 1, PASSWORD)
    client._request_id = MAX_REQUEST_ID
    assert client._next_request_id() == 1


@pytest.mark.asyncio
async def test_auth_succeeds_when_reply_id_matches():
    async with FakeConsoleServer() as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)

        assert await client.connect() is True
        assert client.state == SessionState.AUTHENTICATED
        await client.disconnect()


@pytest.mark.asyncio
async def test_auth_fails_when_reply_id_differs():
    async with FakeConsoleServer() as server:
        client = ConsoleClient("127.0.0.1", server.port, "wrong", timeout=0.5)

        assert await client.connect() is False
        assert client.state == SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_to_closed_port_fails():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    client = ConsoleClient("127.0.0.1", port, PASSWORD, timeout=0.5)
    assert await client.connect() is False
    assert client.state == SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_execute_returns_matching_reply():
    async with FakeConsoleServer() as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        result = await client.execute("list")

        assert result.success is True
        assert result.body == "ran list"
        assert client.commands_executed == 1
        await client.disconnect()


@pytest.mark.asyncio
async def test_execute_discards_stale_replies():
    async with FakeConsoleServer(mode="stale") as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        result = await client.execute("tps")

        assert result.body == "ran tps"
        await client.disconnect()


@pytest.mark.asyncio
async def test_command_timeout_keeps_session_connected():
    async with FakeConsoleServer(mode="silent") as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        result = await client.execute("list", timeout=0.1)

        assert result.success is False
        assert result.error == "Command timeout"
        assert client.state == SessionState.AUTHENTICATED
        await client.disconnect()


@pytest.mark.asyncio
async def test_timeout_mid_packet_keeps_framing():
    async with FakeConsoleServer(mode="split") as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        slow = await client.execute("slow", timeout=0.2)
        assert slow.error == "Command timeout"
        assert client.state == SessionState.AUTHENTICATED

        # The late "slow" reply is discarded as stale, then "list" is answered
        after = await client.execute("list", timeout=2.0)
        assert after.success is True
        assert after.body == "ran list"
        assert client.state == SessionState.AUTHENTICATED
        await client.disconnect()


@pytest.mark.asyncio
async def test_invalid_length_prefix_disconnects_session():
    async with FakeConsoleServer(mode="garbage") as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        result = await client.execute("list")

        assert result.success is False
        assert result.error == "Invalid packet length 2"
        assert client.state == SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_transport_failure_disconnects_session():
    async with FakeConsoleServer(mode="hangup") as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        result = await client.execute("list")

        assert result.success is False
        assert client.state == SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_execute_requires_authentication():
    client = ConsoleClient("127.0.0.1", 1, PASSWORD)
    result = await client.execute("list")
    assert result.success is False


@pytest.mark.asyncio
async def test_disconnect_is_idempotent():
    async with FakeConsoleServer() as server:
        client = ConsoleClient("127.0.0.1", server.port, PASSWORD, timeout=0.5)
        await client.connect()

        await client.disconnect()
        await client.disconnect()
        assert client.state == SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_sessions_registry():
    instance_id = uuid4()
    async with FakeConsoleServer() as server:
        sessions = ConsoleSessions(timeout=0.5)

        assert await sessions.connect(instance_id, "127.0.0.1", server.port, PASSWORD) is True
        assert sessions.is_connected(instance_id)
        assert sessions.connection_count == 1
        assert (await sessions.execute(instance_id, "say hi")).body == "ran say hi"

        await sessions.disconnect_all()
        assert sessions.connection_count == 0
        assert not sessions.is_connected(instance_id)


@pytest.mark.asyncio
async def test_sessions_execute_without_session_fails():
    sessions = ConsoleSessions()
    result = await sessions.execute(uuid4(), "list")
    assert result.success is False
