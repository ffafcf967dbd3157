from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from inbox_service.api.deps import HubDep, UoWFactoryDep, get_verifier
from inbox_service.api.middleware.correlation_id import correlation_id_ctx
from inbox_service.api.v1.schemas.message import SendMessageRequest
from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from inbox_service.application.uow import UnitOfWorkFactory
from inbox_service.config import settings
from inbox_service.domain.entities.message import Message
from inbox_service.infrastructure.ws import protocol
from inbox_service.infrastructure.ws.hub import RealtimeHub
from inbox_service.infrastructure.ws.protocol import WsInbound
from inbox_service.infrastructure.ws.registry import Connection, ConnectionRegistry
from inbox_service.services import delivery_service, read_state_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/inbox")
async def ws_inbox(
    websocket: WebSocket,
    hub: HubDep,
    uow_factory: UoWFactoryDep,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    await websocket.accept()
    async with hub.registry.session(websocket, principal) as conn:
        cid_token = correlation_id_ctx.set(conn.id)
        logger.info("WS connected: %s", principal.principal_key)
        writer_task = asyncio.create_task(
            _write_loop(websocket, conn, hub.registry), name=f"ws-writer-{conn.id}",
        )
        heartbeat_task = asyncio.create_task(
            _heartbeat(conn, hub.registry), name=f"ws-heartbeat-{conn.id}",
        )
        try:
            await _read_loop(websocket, conn, hub, uow_factory)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("WS error for %s", principal.principal_key)
        finally:
            heartbeat_task.cancel()
            writer_task.cancel()
            await asyncio.gather(writer_task, heartbeat_task, return_exceptions=True)
            logger.info("WS disconnected: %s", principal.principal_key)
            correlation_id_ctx.reset(cid_token)


async def _write_loop(ws: WebSocket, conn: Connection, registry: ConnectionRegistry) -> None:
    """Sole writer of the socket: frames go out in the order they were queued."""
    try:
        while True:
            raw = await conn.outbox.get()
            await ws.send_text(raw)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.info("Send failed on connection %s, removing it", conn.id)
        registry.unregister(conn.id)


async def _heartbeat(conn: Connection, registry: ConnectionRegistry) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while True:
        await asyncio.sleep(interval)
        registry.push(conn.id, protocol.encode(protocol.PONG))


async def _read_loop(
    ws: WebSocket,
    conn: Connection,
    hub: RealtimeHub,
    uow_factory: UnitOfWorkFactory,
) -> None:
    registry = hub.registry
    while True:
        frame = await ws.receive()
        if frame["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
        raw = frame.get("text")
        if raw is None:
            registry.push(conn.id, protocol.error_event("invalid_payload", "Text frames only"))
            continue
        try:
            msg = WsInbound.model_validate_json(raw)
        except PayloadError:
            registry.push(conn.id, protocol.error_event("invalid_payload"))
            continue

        if msg.type == protocol.PING:
            registry.push(conn.id, protocol.encode(protocol.PONG))

        elif msg.type == protocol.JOIN_ROOM:
            _handle_join(conn, hub, msg.data)

        elif msg.type == protocol.SEND_MESSAGE:
            await _handle_send(conn, hub, uow_factory, msg.data)

        elif msg.type == protocol.MARK_READ:
            await _handle_mark_read(conn, registry, uow_factory, msg.data)

        else:
            registry.push(
                conn.id,
                protocol.error_event("unknown_type", f"Unknown event type: {msg.type}"),
            )


def _handle_join(conn: Connection, hub: RealtimeHub, data: dict[str, Any]) -> None:
    try:
        recipient_id = int(data["recipient_id"])
    except (KeyError, TypeError, ValueError):
        hub.registry.push(conn.id, protocol.error_event("invalid_payload", "recipient_id is required"))
        return

    room = hub.authorizer.join(conn.id, recipient_id, conn.principal)
    if room is None:
        return
    hub.registry.push(
        conn.id, protocol.encode(protocol.ROOM_JOINED, {"recipient_id": room.recipient_id}),
    )


async def _handle_send(
    conn: Connection,
    hub: RealtimeHub,
    uow_factory: UnitOfWorkFactory,
    data: dict[str, Any],
) -> None:
    request_id = data.get("request_id")
    request_id = str(request_id) if request_id is not None else None
    push = hub.registry.push

    try:
        request = SendMessageRequest.model_validate(data)
    except PayloadError:
        push(conn.id, protocol.error_event(
            "invalid_payload", "Malformed send_message payload", request_id=request_id,
        ))
        return

    async def _persist_and_publish() -> Message:
        async with uow_factory() as uow:
            return await delivery_service.send_and_publish(
                request.to_dto(), conn.principal, uow, hub.dispatcher,
            )

    try:
        # Persistence runs to completion even if this connection goes away
        msg = await asyncio.shield(_persist_and_publish())
    except ForbiddenError as exc:
        logger.warning("Send denied for %s: %s", conn.principal.principal_key, exc.detail)
    except ValidationError as exc:
        push(conn.id, protocol.error_event("validation_error", exc.detail, request_id=request_id))
    except NotFoundError as exc:
        push(conn.id, protocol.error_event("not_found", exc.detail, request_id=request_id))
    except StoreError as exc:
        push(conn.id, protocol.error_event(
            "store_unavailable", exc.detail, retryable=True, request_id=request_id,
        ))
    else:
        hub.dispatcher.acknowledge(conn.id, msg, request_id)


async def _handle_mark_read(
    conn: Connection,
    registry: ConnectionRegistry,
    uow_factory: UnitOfWorkFactory,
    data: dict[str, Any],
) -> None:
    try:
        message_id = UUID(str(data["message_id"]))
    except (KeyError, ValueError):
        registry.push(conn.id, protocol.error_event("invalid_payload", "message_id is required"))
        return

    try:
        async with uow_factory() as uow:
            msg = await read_state_service.mark_read(message_id, conn.principal, uow)
    except ForbiddenError:
        logger.warning(
            "mark_read of %s denied for %s", message_id, conn.principal.principal_key,
        )
    except NotFoundError as exc:
        registry.push(conn.id, protocol.error_event("not_found", exc.detail))
    except StoreError as exc:
        registry.push(conn.id, protocol.error_event("store_unavailable", exc.detail, retryable=True))
    else:
        registry.push(
            conn.id, protocol.encode(protocol.MESSAGE_READ, {"message": protocol.message_data(msg)}),
        )
