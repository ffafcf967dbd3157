from __future__ import annotations

from dataclasses import dataclass, field

from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.enums import MessageCategory


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    """Unvalidated send request, shared by the HTTP and WebSocket adapters."""

    recipient_id: int | None
    title: str | None
    body: str | None
    category: str | None
    reference_ids: dict[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InboxFilterDTO:
    category: MessageCategory | None = None
    unread_only: bool = False
    cursor: str | None = None
    limit: int = 20


@dataclass(frozen=True, slots=True)
class MessageFilterDTO:
    recipient_id: int | None = None
    category: MessageCategory | None = None
    cursor: str | None = None
    limit: int = 20


@dataclass(frozen=True, slots=True)
class MessagePage:
    items: list[Message]
    next_cursor: str | None = None
    unread_count: int | None = None
