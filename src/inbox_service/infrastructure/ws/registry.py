"""In-process registry of live WebSocket connections and recipient rooms.

All methods that touch membership are synchronous. Everything runs on one
event loop, so a mutation can never interleave with a ``members_of``
lookup: readers see a connection either fully joined or fully removed.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import AsyncIterator, Protocol

from inbox_service.application.dto.principal import Principal
from inbox_service.domain.value_objects.room import RoomKey

logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class ConnectionState(StrEnum):
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"


@dataclass(eq=False, slots=True)
class Connection:
    id: str
    handle: ConnectionHandle
    principal: Principal
    outbox: asyncio.Queue[str]
    room: RoomKey | None = None
    state: ConnectionState = field(default=ConnectionState.CONNECTED)


class ConnectionRegistry:
    """Tracks live connections and which recipient room each has joined."""

    def __init__(self, *, send_queue_size: int = 256) -> None:
        self._send_queue_size = send_queue_size
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[RoomKey, set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def register(self, handle: ConnectionHandle, principal: Principal) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = Connection(
            id=connection_id,
            handle=handle,
            principal=principal,
            outbox=asyncio.Queue(maxsize=self._send_queue_size),
        )
        logger.debug(
            "Connection %s registered for %s (total=%d)",
            connection_id, principal.principal_key, len(self._connections),
        )
        return connection_id

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def join_room(self, connection_id: str, room: RoomKey) -> bool:
        """Add the connection to ``room``.

        Joining the same room again is a no-op. A connection holds at most
        one room: joining a different one is rejected and leaves the
        existing membership untouched. Returns whether the connection is a
        member of ``room`` afterwards.
        """
        conn = self._connections.get(connection_id)
        if conn is None or conn.state is not ConnectionState.CONNECTED:
            return False
        if conn.room == room:
            return True
        if conn.room is not None:
            logger.warning(
                "Connection %s already in %s, refusing to join %s",
                connection_id, conn.room, room,
            )
            return False
        conn.room = room
        self._rooms.setdefault(room, set()).add(connection_id)
        logger.debug("Connection %s joined %s", connection_id, room)
        return True

    def leave_room(self, connection_id: str, room: RoomKey) -> None:
        conn = self._connections.get(connection_id)
        if conn is None or conn.room != room:
            return
        conn.room = None
        self._discard_member(room, connection_id)

    def members_of(self, room: RoomKey) -> frozenset[str]:
        return frozenset(self._rooms.get(room, ()))

    def unregister(self, connection_id: str) -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return
        if conn.room is not None:
            self._discard_member(conn.room, connection_id)
            conn.room = None
        conn.state = ConnectionState.CLOSED
        logger.debug("Connection %s unregistered (total=%d)", connection_id, len(self._connections))

    def push(self, connection_id: str, raw: str) -> bool:
        """Queue an outbound frame. False if the connection is gone or its queue is full."""
        conn = self._connections.get(connection_id)
        if conn is None or conn.state is not ConnectionState.CONNECTED:
            return False
        try:
            conn.outbox.put_nowait(raw)
        except asyncio.QueueFull:
            logger.warning("Send queue full for connection %s, dropping frame", connection_id)
            return False
        return True

    @asynccontextmanager
    async def session(
        self, handle: ConnectionHandle, principal: Principal
    ) -> AsyncIterator[Connection]:
        """Register for the duration of the block; always unregisters on exit."""
        connection_id = self.register(handle, principal)
        conn = self._connections[connection_id]
        try:
            yield conn
        finally:
            conn.state = ConnectionState.DISCONNECTING
            self.unregister(connection_id)

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> None:
        conns = list(self._connections.values())
        for conn in conns:
            self.unregister(conn.id)
        for conn in conns:
            try:
                await conn.handle.close(code=code, reason=reason)
            except Exception:
                logger.debug("Close failed for connection %s", conn.id, exc_info=True)
        if conns:
            logger.info("Closed %d connection(s)", len(conns))

    def _discard_member(self, room: RoomKey, connection_id: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room]
