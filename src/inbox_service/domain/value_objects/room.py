from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inbox_service.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class RoomKey:
    """Fan-out group of a single recipient.

    Built by ``RoomAuthorizer`` once a join has been authorized, or derived
    from an already persisted message for dispatch lookups. Raw client
    input never becomes a ``RoomKey`` directly.
    """

    recipient_id: int

    @classmethod
    def for_message(cls, message: Message) -> RoomKey:
        return cls(recipient_id=message.recipient_id)

    def __str__(self) -> str:
        return f"recipient:{self.recipient_id}"
