from __future__ import annotations

from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession

from inbox_service.infrastructure.db.errors import store_errors
from inbox_service.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from inbox_service.infrastructure.db.repositories.recipient import (
    RecipientReaderRepo,
    RecipientWriterRepo,
)
from inbox_service.infrastructure.db.session import AsyncSessionLocal


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.recipients = RecipientReaderRepo(session)
        self.recipients_w = RecipientWriterRepo(session)

    async def flush(self) -> None:
        with store_errors("flush"):
            await self._session.flush()

    async def commit(self) -> None:
        with store_errors("commit"):
            await self._session.commit()

    async def rollback(self) -> None:
        with store_errors("rollback"):
            await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self._session.rollback()


@asynccontextmanager
async def sqlalchemy_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """Fresh session-scoped UoW, for code paths outside a request (WebSocket, workers)."""
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow
