from __future__ import annotations

import logging

from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.room import RoomKey
from inbox_service.infrastructure.ws import protocol
from inbox_service.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class BroadcastDispatcher:
    """Pushes persisted messages to the live connections of their recipient room.

    Frames are queued on each connection's outbox, which a single writer
    drains in order, so members of a room receive messages in the order
    they were published.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def publish(self, message: Message) -> int:
        room = RoomKey.for_message(message)
        members = self._registry.members_of(room)
        if not members:
            logger.debug("No live connections in %s; message %s left for pull", room, message.id)
            return 0

        raw = protocol.encode(protocol.MESSAGE_RECEIVED, {"message": protocol.message_data(message)})
        queued = 0
        for connection_id in members:
            if self._registry.push(connection_id, raw):
                queued += 1
        logger.debug("Message %s queued to %d/%d connection(s) in %s", message.id, queued, len(members), room)
        return queued

    def acknowledge(
        self,
        connection_id: str,
        message: Message,
        request_id: str | None = None,
    ) -> bool:
        """Confirm persistence to the sending connection only.

        This says nothing about delivery to the recipient.
        """
        data = {"message_id": str(message.id), "request_id": request_id}
        return self._registry.push(connection_id, protocol.encode(protocol.MESSAGE_SENT, data))
