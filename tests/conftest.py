"""Shared test fixtures."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator
from uuid import UUID

import pytest

from inbox_service.application.dto.message import InboxFilterDTO, MessageFilterDTO
from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import StoreError
from inbox_service.application.pagination import decode_cursor
from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.enums import MessageCategory, PrincipalKind

RECIPIENT_ID = 42
OTHER_RECIPIENT_ID = 43
OPERATOR_ID = 1


@pytest.fixture
def user_principal() -> Principal:
    return Principal(kind=PrincipalKind.USER, subject_id=RECIPIENT_ID, roles=[])


@pytest.fixture
def other_user_principal() -> Principal:
    return Principal(kind=PrincipalKind.USER, subject_id=OTHER_RECIPIENT_ID, roles=[])


@pytest.fixture
def operator_principal() -> Principal:
    return Principal(kind=PrincipalKind.OPERATOR, subject_id=OPERATOR_ID, roles=[])


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    uow.recipients._active.update({RECIPIENT_ID, OTHER_RECIPIENT_ID})
    return uow


def make_message(
    *,
    recipient_id: int = RECIPIENT_ID,
    sender_id: int = OPERATOR_ID,
    title: str = "Order Delivered Report",
    body: str = "Your order was delivered.",
    category: MessageCategory = MessageCategory.SUMMARY,
    created_at: datetime | None = None,
    is_read: bool = False,
) -> Message:
    created_at = created_at or datetime.now(timezone.utc)
    return Message(
        id=uuid.uuid4(),
        recipient_id=recipient_id,
        sender_id=sender_id,
        title=title,
        body=body,
        category=category.value,
        reference_ids={"order_id": "12345"},
        created_at=created_at,
        is_read=is_read,
        read_at=created_at + timedelta(minutes=1) if is_read else None,
    )


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now


def _page(items: list[Message], cursor: str | None, limit: int) -> list[Message]:
    items = sorted(items, key=lambda m: (m.created_at, m.id), reverse=True)
    if cursor:
        ts, mid = decode_cursor(cursor)
        items = [m for m in items if (m.created_at, m.id) < (ts, mid)]
    return items[:limit]


@dataclass
class FakeMessageReader:
    _messages: dict[UUID, Message] = field(default_factory=dict)

    def add(self, *messages: Message) -> None:
        for m in messages:
            self._messages[m.id] = m

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return self._messages.get(message_id)

    async def list_for_recipient(self, recipient_id: int, filters: InboxFilterDTO) -> list[Message]:
        items = [m for m in self._messages.values() if m.recipient_id == recipient_id]
        if filters.category is not None:
            items = [m for m in items if m.category == filters.category.value]
        if filters.unread_only:
            items = [m for m in items if not m.is_read]
        return _page(items, filters.cursor, filters.limit)

    async def count_unread(self, recipient_id: int) -> int:
        return sum(1 for m in self._messages.values() if m.recipient_id == recipient_id and not m.is_read)

    async def list_all(self, filters: MessageFilterDTO) -> list[Message]:
        items = list(self._messages.values())
        if filters.recipient_id is not None:
            items = [m for m in items if m.recipient_id == filters.recipient_id]
        if filters.category is not None:
            items = [m for m in items if m.category == filters.category.value]
        return _page(items, filters.cursor, filters.limit)


@dataclass
class FakeMessageWriter:
    """Creates are staged until commit; mark_read is a compare-and-swap on the committed store."""

    _reader: FakeMessageReader
    _pending: list[Message] = field(default_factory=list)
    fail: bool = False
    creates: int = 0
    read_transitions: int = 0

    async def create(self, message: Message) -> Message:
        if self.fail:
            raise StoreError("Message store unavailable, try again")
        self.creates += 1
        self._pending.append(message)
        return message

    async def mark_read(self, message_id: UUID, read_at: datetime) -> Message | None:
        current = self._reader._messages.get(message_id)
        if current is None or current.is_read:
            return None
        updated = replace(current, is_read=True, read_at=read_at)
        self._reader._messages[message_id] = updated
        self.read_transitions += 1
        return updated


@dataclass
class FakeRecipientReader:
    _active: set[int] = field(default_factory=set)

    async def exists(self, recipient_id: int) -> bool:
        return recipient_id in self._active


@dataclass
class FakeRecipientWriter:
    _reader: FakeRecipientReader

    async def upsert(self, recipient_id: int, *, active: bool, ts: datetime) -> None:
        if active:
            self._reader._active.add(recipient_id)
        else:
            self._reader._active.discard(recipient_id)

    async def deactivate(self, recipient_id: int, ts: datetime) -> None:
        self._reader._active.discard(recipient_id)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    recipients: FakeRecipientReader = field(default_factory=FakeRecipientReader)
    recipients_w: FakeRecipientWriter | None = None
    _committed: bool = False
    _rolled_back: bool = False

    def __post_init__(self) -> None:
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.recipients_w is None:
            self.recipients_w = FakeRecipientWriter(self.recipients)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.messages.add(*self.messages_w._pending)
        self.messages_w._pending.clear()
        self._committed = True

    async def rollback(self) -> None:
        self.messages_w._pending.clear()
        self._rolled_back = True


def fake_uow_factory(uow: FakeUoW):
    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return _factory


@dataclass
class FakeHandle:
    """Stands in for a WebSocket in registry/dispatcher tests."""
    sent: list[str] = field(default_factory=list)
    closed_with: int | None = None

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = code
