"""Reconnecting inbox client.

Keeps one recipient's WebSocket session alive: connects, joins the
recipient room, and after any unintentional drop reconnects a bounded
number of times with a fixed delay, re-joining the room every time since
the server forgets membership when a connection goes away.

    client = InboxClient("ws://localhost:8000/ws/inbox", token, recipient_id=42)
    with client.subscribe(MESSAGE_RECEIVED, on_message):
        await client.start()
        ...
        await client.close()
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import urlencode

import websockets
from pydantic import ValidationError as PayloadError
from websockets.exceptions import WebSocketException

from inbox_service.infrastructure.ws import protocol
from inbox_service.infrastructure.ws.protocol import WsInbound, WsOutbound

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_JOIN_TIMEOUT = 5.0


class ClientState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINED = "joined"


class Transport(Protocol):
    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]
EventCallback = Callable[[dict[str, Any]], Any]
StateCallback = Callable[[ClientState], Any]


async def _default_connector(url: str) -> Transport:
    return await websockets.connect(url)


class Subscription:
    """Handle for a registered callback; ``cancel()`` is idempotent."""

    def __init__(self, listeners: list[Any], callback: Any) -> None:
        self._listeners = listeners
        self._callback = callback
        listeners.append(callback)

    @property
    def active(self) -> bool:
        return self._callback in self._listeners

    def cancel(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


class InboxClient:
    def __init__(
        self,
        url: str,
        token: str,
        recipient_id: int,
        *,
        connector: Connector | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
    ) -> None:
        self._url = url
        self._token = token
        self._recipient_id = recipient_id
        self._connector = connector or _default_connector
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._join_timeout = join_timeout

        self._state = ClientState.DISCONNECTED
        self._reached = {s: asyncio.Event() for s in ClientState}
        self._reached[ClientState.DISCONNECTED].set()
        self._listeners: dict[str, list[EventCallback]] = {}
        self._state_listeners: list[StateCallback] = []
        self._transport: Transport | None = None
        self._task: asyncio.Task[None] | None = None
        self._callback_tasks: set[asyncio.Future[Any]] = set()
        self._closing = False
        self.exhausted = False

    @property
    def state(self) -> ClientState:
        return self._state

    def subscribe(self, event_type: str, callback: EventCallback) -> Subscription:
        """Call ``callback(data)`` for every server event of ``event_type``."""
        return Subscription(self._listeners.setdefault(event_type, []), callback)

    def subscribe_state(self, callback: StateCallback) -> Subscription:
        return Subscription(self._state_listeners, callback)

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self.exhausted = False
        self._task = asyncio.create_task(self._run(), name=f"inbox-client-{self._recipient_id}")

    async def close(self) -> None:
        """Intentional disconnect; never followed by a reconnect."""
        self._closing = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_state(ClientState.DISCONNECTED)

    async def reinitialize(self) -> None:
        """Start over with a fresh retry budget, e.g. after it was exhausted."""
        await self.close()
        await self.start()

    async def wait_for(self, state: ClientState, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._reached[state].wait(), timeout)

    async def send(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        if self._transport is None:
            raise ConnectionError("Inbox client is not connected")
        await self._transport.send(WsInbound(type=event_type, data=data or {}).model_dump_json())

    async def mark_read(self, message_id: str) -> None:
        await self.send(protocol.MARK_READ, {"message_id": message_id})

    async def _run(self) -> None:
        attempts_left = self._max_attempts
        first = True
        while not self._closing:
            if not first:
                if attempts_left <= 0:
                    self.exhausted = True
                    logger.warning(
                        "Giving up on recipient %d after %d reconnection attempt(s)",
                        self._recipient_id, self._max_attempts,
                    )
                    return
                attempts_left -= 1
                await asyncio.sleep(self._retry_delay)
            first = False
            if await self._session():
                attempts_left = self._max_attempts

    async def _session(self) -> bool:
        """One connection lifetime. Returns whether the room was joined."""
        self._set_state(ClientState.CONNECTING)
        try:
            transport = await self._connector(self._session_url())
        except (WebSocketException, OSError) as exc:
            logger.info("Connect failed: %s", exc)
            self._set_state(ClientState.DISCONNECTED)
            return False

        self._transport = transport
        self._set_state(ClientState.CONNECTED)
        joined = False
        try:
            await transport.send(
                WsInbound(type=protocol.JOIN_ROOM, data={"recipient_id": self._recipient_id}).model_dump_json()
            )
            async with asyncio.timeout(self._join_timeout):
                while True:
                    event = await self._receive(transport)
                    if event is not None and event.type == protocol.ROOM_JOINED:
                        break
                    self._dispatch(event)
            joined = True
            self._set_state(ClientState.JOINED)

            while True:
                self._dispatch(await self._receive(transport))
        except TimeoutError:
            logger.warning("No room_joined within %.1fs, dropping connection", self._join_timeout)
        except (WebSocketException, OSError) as exc:
            logger.info("Connection lost: %s", exc)
        finally:
            self._transport = None
            await transport.close()
            if not self._closing:
                self._set_state(ClientState.DISCONNECTED)
        return joined

    def _session_url(self) -> str:
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{urlencode({'token': self._token})}"

    @staticmethod
    async def _receive(transport: Transport) -> WsOutbound | None:
        raw = await transport.recv()
        try:
            return WsOutbound.model_validate_json(raw)
        except PayloadError:
            logger.warning("Ignoring malformed frame: %r", raw)
            return None

    def _dispatch(self, event: WsOutbound | None) -> None:
        if event is None:
            return
        for callback in list(self._listeners.get(event.type, ())):
            self._invoke(callback, event.data)

    def _set_state(self, state: ClientState) -> None:
        if state == self._state:
            return
        self._reached[self._state].clear()
        self._state = state
        self._reached[state].set()
        for callback in list(self._state_listeners):
            self._invoke(callback, state)

    def _invoke(self, callback: Callable[[Any], Any], arg: Any) -> None:
        try:
            result = callback(arg)
        except Exception:
            logger.exception("Inbox client callback failed")
            return
        if inspect.isawaitable(result):
            # Held until done so the task is not collected mid-run
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Future[Any]) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Inbox client callback failed", exc_info=task.exception())
