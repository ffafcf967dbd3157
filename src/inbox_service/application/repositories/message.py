from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from inbox_service.application.dto.message import InboxFilterDTO, MessageFilterDTO
from inbox_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_for_recipient(
        self, recipient_id: int, filters: InboxFilterDTO
    ) -> list[Message]:
        """Newest first, keyset-paginated by (created_at, id)."""
        ...

    async def count_unread(self, recipient_id: int) -> int: ...

    async def list_all(self, filters: MessageFilterDTO) -> list[Message]: ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_read(self, message_id: UUID, read_at: datetime) -> Message | None:
        """Flip is_read false→true. Return the updated message, or None if it was already read."""
        ...
