from __future__ import annotations

from typing import AsyncContextManager, Callable, Protocol

from inbox_service.application.repositories.message import MessageReader, MessageWriter
from inbox_service.application.repositories.recipient import (
    RecipientReader,
    RecipientWriter,
)


class UnitOfWork(Protocol):
    messages: MessageReader
    messages_w: MessageWriter
    recipients: RecipientReader
    recipients_w: RecipientWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UnitOfWorkFactory = Callable[[], AsyncContextManager[UnitOfWork]]
