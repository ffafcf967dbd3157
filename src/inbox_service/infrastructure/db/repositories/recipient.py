from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.infrastructure.db.errors import store_errors
from inbox_service.infrastructure.db.models.recipient import RecipientModel


class RecipientReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, recipient_id: int) -> bool:
        stmt = select(RecipientModel.id).where(
            RecipientModel.id == recipient_id,
            RecipientModel.active.is_(True),
        )
        with store_errors("recipient_exists"):
            result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None


class RecipientWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, recipient_id: int, *, active: bool, ts: datetime) -> None:
        stmt = (
            pg_insert(RecipientModel)
            .values(id=recipient_id, active=active, updated_at=ts)
            .on_conflict_do_update(
                index_elements=[RecipientModel.id],
                set_={"active": active, "updated_at": ts},
            )
        )
        with store_errors("upsert_recipient"):
            await self._session.execute(stmt)

    async def deactivate(self, recipient_id: int, ts: datetime) -> None:
        stmt = (
            update(RecipientModel)
            .where(RecipientModel.id == recipient_id)
            .values(active=False, updated_at=ts)
        )
        with store_errors("deactivate_recipient"):
            await self._session.execute(stmt)
