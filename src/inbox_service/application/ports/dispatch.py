from __future__ import annotations

from typing import Protocol

from inbox_service.domain.entities.message import Message


class MessagePublisher(Protocol):
    def publish(self, message: Message) -> int:
        """Push an already persisted message to its recipient's live connections.

        Returns the number of connections the message was queued for.
        """
        ...
