from __future__ import annotations

from datetime import datetime
from typing import Protocol


class RecipientReader(Protocol):
    async def exists(self, recipient_id: int) -> bool:
        """True when the account is known and active."""
        ...


class RecipientWriter(Protocol):
    async def upsert(self, recipient_id: int, *, active: bool, ts: datetime) -> None: ...

    async def deactivate(self, recipient_id: int, ts: datetime) -> None: ...
