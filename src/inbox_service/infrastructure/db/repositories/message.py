from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.application.dto.message import InboxFilterDTO, MessageFilterDTO
from inbox_service.application.pagination import decode_cursor
from inbox_service.domain.entities.message import Message
from inbox_service.infrastructure.db.errors import store_errors
from inbox_service.infrastructure.db.mappers import message as mapper
from inbox_service.infrastructure.db.models.message import MessageModel


def _newest_first(stmt: Select, cursor: str | None, limit: int) -> Select:
    stmt = stmt.order_by(MessageModel.created_at.desc(), MessageModel.id.desc()).limit(limit)
    if cursor:
        ts, mid = decode_cursor(cursor)
        stmt = stmt.where(
            (MessageModel.created_at < ts)
            | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
        )
    return stmt


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: UUID) -> Message | None:
        with store_errors("get_message"):
            model = await self._session.get(MessageModel, message_id, populate_existing=True)
        return mapper.model_to_entity(model) if model else None

    async def list_for_recipient(
        self, recipient_id: int, filters: InboxFilterDTO
    ) -> list[Message]:
        stmt = select(MessageModel).where(MessageModel.recipient_id == recipient_id)
        if filters.category is not None:
            stmt = stmt.where(MessageModel.category == filters.category.value)
        if filters.unread_only:
            stmt = stmt.where(MessageModel.is_read.is_(False))
        stmt = _newest_first(stmt, filters.cursor, filters.limit)
        with store_errors("list_inbox"):
            result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, recipient_id: int) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.recipient_id == recipient_id,
            MessageModel.is_read.is_(False),
        )
        with store_errors("count_unread"):
            result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def list_all(self, filters: MessageFilterDTO) -> list[Message]:
        stmt = select(MessageModel)
        if filters.recipient_id is not None:
            stmt = stmt.where(MessageModel.recipient_id == filters.recipient_id)
        if filters.category is not None:
            stmt = stmt.where(MessageModel.category == filters.category.value)
        stmt = _newest_first(stmt, filters.cursor, filters.limit)
        with store_errors("list_messages"):
            result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        stmt = (
            insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .returning(MessageModel)
        )
        with store_errors("create_message"):
            result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    async def mark_read(self, message_id: UUID, read_at: datetime) -> Message | None:
        """Compare-and-swap on is_read: only the first caller gets a row back."""
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.is_read.is_(False))
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel)
            .execution_options(synchronize_session=False)
        )
        with store_errors("mark_read"):
            result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return mapper.model_to_entity(row) if row is not None else None
