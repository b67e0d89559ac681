"""
Remote console (RCON) client.

Wire format, all integers little-endian::

    <int32 length> <int32 request id> <int32 type> <body bytes> 0x00 0x00

``length`` covers everything after itself. A session authenticates once,
then executes commands one at a time; replies are matched to requests by id.
"""
import asyncio
import logging
import struct
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, DefaultDict, Dict, Optional
from uuid import UUID

from prometheus_client import Histogram

from mcfleet.domain.errors import ProtocolError

logger = logging.getLogger(__name__)

PACKET_RESPONSE = 0
PACKET_COMMAND = 2
PACKET_AUTH = 3

MIN_PACKET_LENGTH = 10  # id + type + two terminators
MAX_PACKET_LENGTH = 4096 + MIN_PACKET_LENGTH
MAX_REQUEST_ID = 2 ** 31 - 1

_LENGTH = struct.Struct("<i")
_HEADER = struct.Struct("<ii")


@dataclass(frozen=True)
class Packet:
    request_id: int
    type: int
    body: str


def encode_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = _HEADER.pack(request_id, packet_type) + body.encode("utf-8") + b"\x00\x00"
    return _LENGTH.pack(len(payload)) + payload


def decode_packet(data: bytes) -> Packet:
    """Decode one complete packet, length prefix included."""
    if len(data) < _LENGTH.size + MIN_PACKET_LENGTH:
        raise ProtocolError(f"Short packet ({len(data)} bytes)")
    (length,) = _LENGTH.unpack_from(data, 0)
    if length < MIN_PACKET_LENGTH or length > MAX_PACKET_LENGTH:
        raise ProtocolError(f"Invalid packet length {length}")
    if len(data) < _LENGTH.size + length:
        raise ProtocolError(f"Truncated packet: expected {length} bytes, got {len(data) - _LENGTH.size}")
    request_id, packet_type = _HEADER.unpack_from(data, _LENGTH.size)
    body = data[_LENGTH.size + _HEADER.size:_LENGTH.size + length - 2]
    return Packet(request_id, packet_type, body.decode("utf-8", errors="replace"))


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class ConsoleResult:
    success: bool
    body: str = ""
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ConsoleResult":
        return cls(success=False, error=error)


class ConsoleClient:
    def __init__(self, host: str, port: int, password: str, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self.state = SessionState.DISCONNECTED
        self.commands_executed = 0
        # Not registered anywhere; read back by the exposition encoder
        self.command_duration = Histogram(
            "minecraft_rcon_command_duration_seconds",
            "Duration of RCON commands",
            registry=None,
        )
        self._request_id = 0
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        # Bytes received but not yet framed; survives a cancelled read
        self._buffer = bytearray()
        self._lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def _next_request_id(self) -> int:
        self._request_id = self._request_id + 1 if self._request_id < MAX_REQUEST_ID else 1
        return self._request_id

    async def connect(self) -> bool:
        """Open the socket and authenticate. False on any failure."""
        if self.is_authenticated:
            return True
        await self.disconnect()

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning("Console connection to %s:%s failed: %s", self.host, self.port, exc)
            await self.disconnect()
            return False
        self.state = SessionState.CONNECTED

        async with self._lock:
            request_id = self._next_request_id()
            try:
                self._writer.write(encode_packet(request_id, PACKET_AUTH, self.password))
                await self._writer.drain()
                reply = await asyncio.wait_for(self._read_packet(), timeout=self.timeout)
            except (OSError, EOFError, asyncio.TimeoutError, ProtocolError) as exc:
                logger.warning("Console authentication with %s:%s failed: %s", self.host, self.port, exc)
                await self.disconnect()
                return False

        if reply.request_id != request_id:
            logger.warning("Console authentication with %s:%s rejected", self.host, self.port)
            await self.disconnect()
            return False

        self.state = SessionState.AUTHENTICATED
        return True

    async def execute(self, command: str, timeout: float | None = None) -> ConsoleResult:
        if not self.is_authenticated:
            return ConsoleResult.failure("Not connected or authenticated")
        timeout = self.timeout if timeout is None else timeout

        async with self._lock:
            if not self.is_authenticated:
                return ConsoleResult.failure("Not connected or authenticated")
            request_id = self._next_request_id()
            try:
                with self.command_duration.time():
                    self._writer.write(encode_packet(request_id, PACKET_COMMAND, command))
                    await self._writer.drain()
                    packet = await asyncio.wait_for(self._read_response(request_id), timeout=timeout)
            except asyncio.TimeoutError:
                return ConsoleResult.failure("Command timeout")
            except ProtocolError as exc:
                # An unframeable length prefix leaves no way to find the next packet
                logger.warning("Console stream from %s:%s corrupted: %s", self.host, self.port, exc)
                await self.disconnect()
                return ConsoleResult.failure(str(exc))
            except (OSError, EOFError) as exc:
                logger.warning("Console connection to %s:%s lost: %s", self.host, self.port, exc)
                await self.disconnect()
                return ConsoleResult.failure(f"Connection lost: {exc}")

        self.commands_executed += 1
        return ConsoleResult(success=True, body=packet.body)

    async def disconnect(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        self._buffer.clear()
        self.state = SessionState.DISCONNECTED
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (OSError, EOFError) as exc:
            logger.debug("Console socket closed with error: %s", exc)

    async def _read_packet(self) -> Packet:
        """
        Frame the next packet out of the receive buffer, reading more as needed.

        Nothing is consumed from the buffer until a whole packet is present,
        so a timeout mid-packet leaves the framing intact for the next read.
        """
        while True:
            if len(self._buffer) >= _LENGTH.size:
                (length,) = _LENGTH.unpack_from(self._buffer, 0)
                if length < MIN_PACKET_LENGTH or length > MAX_PACKET_LENGTH:
                    raise ProtocolError(f"Invalid packet length {length}")
                size = _LENGTH.size + length
                if len(self._buffer) >= size:
                    data = bytes(self._buffer[:size])
                    del self._buffer[:size]
                    return decode_packet(data)

            chunk = await self._reader.read(MAX_PACKET_LENGTH + _LENGTH.size)
            if not chunk:
                raise EOFError("Console connection closed by peer")
            self._buffer.extend(chunk)

    async def _read_response(self, request_id: int) -> Packet:
        while True:
            packet = await self._read_packet()
            if packet.request_id == request_id:
                return packet
            logger.debug("Discarding console packet with stale id %s", packet.request_id)


ClientFactory = Callable[..., ConsoleClient]


class ConsoleSessions:
    """One console session per instance. Owned by the service context."""

    def __init__(self, timeout: float = 5.0, client_factory: ClientFactory = ConsoleClient):
        self.timeout = timeout
        self._client_factory = client_factory
        self._sessions: Dict[UUID, ConsoleClient] = {}
        self._locks: DefaultDict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def connection_count(self) -> int:
        return len(self._sessions)

    def get(self, instance_id: UUID) -> ConsoleClient | None:
        return self._sessions.get(instance_id)

    def is_connected(self, instance_id: UUID) -> bool:
        client = self._sessions.get(instance_id)
        return client.is_authenticated if client else False

    async def connect(self, instance_id: UUID, host: str, port: int, password: str) -> bool:
        async with self._locks[instance_id]:
            existing = self._sessions.pop(instance_id, None)
            if existing:
                await existing.disconnect()
            client = self._client_factory(host, port, password, timeout=self.timeout)
            if not await client.connect():
                return False
            self._sessions[instance_id] = client
        logger.info("Console connected for instance %s", instance_id)
        return True

    async def ensure(self, instance_id: UUID, host: str, port: int, password: str) -> ConsoleClient | None:
        """Return an authenticated session, connecting lazily. None when unreachable."""
        if self.is_connected(instance_id):
            return self._sessions[instance_id]
        if await self.connect(instance_id, host, port, password):
            return self._sessions[instance_id]
        return None

    async def execute(self, instance_id: UUID, command: str) -> ConsoleResult:
        client = self._sessions.get(instance_id)
        if not client:
            return ConsoleResult.failure("No console session for instance")
        return await client.execute(command)

    async def disconnect(self, instance_id: UUID) -> None:
        async with self._locks[instance_id]:
            client = self._sessions.pop(instance_id, None)
            if client:
                await client.disconnect()
                logger.info("Console disconnected for instance %s", instance_id)
        self._locks.pop(instance_id, None)

    async def disconnect_all(self) -> None:
        await asyncio.gather(*(self.disconnect(instance_id) for instance_id in list(self._sessions)))
