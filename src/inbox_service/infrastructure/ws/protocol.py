"""WebSocket message envelope models and event names."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from inbox_service.domain.entities.message import Message

# Client -> Server
PING = "ping"
JOIN_ROOM = "join_room"
SEND_MESSAGE = "send_message"
MARK_READ = "mark_read"

# Server -> Client
PONG = "pong"
ROOM_JOINED = "room_joined"
MESSAGE_RECEIVED = "message_received"
MESSAGE_SENT = "message_sent"
MESSAGE_READ = "message_read"
ERROR = "error"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: dict[str, Any] = {}


class MessagePayload(BaseModel):
    id: UUID
    recipient_id: int
    sender_id: int
    title: str
    body: str
    category: str
    reference_ids: dict[str, str]
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


def message_data(message: Message) -> dict[str, Any]:
    return MessagePayload.model_validate(message, from_attributes=True).model_dump(mode="json")


def encode(event_type: str, data: dict[str, Any] | None = None) -> str:
    return WsOutbound(type=event_type, data=data or {}).model_dump_json()


def error_event(
    code: str,
    detail: str = "",
    *,
    retryable: bool = False,
    request_id: str | None = None,
) -> str:
    data: dict[str, Any] = {"code": code, "detail": detail, "retryable": retryable}
    if request_id is not None:
        data["request_id"] = request_id
    return encode(ERROR, data)
