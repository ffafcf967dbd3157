from __future__ import annotations

import logging

from inbox_service.application.dto.principal import Principal
from inbox_service.domain.value_objects.room import RoomKey
from inbox_service.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RoomAuthorizer:
    """The only way into a recipient room.

    A join is allowed when the connection's verified identity is the user
    the room belongs to. Denials are logged and never reported to the
    client; the connection stays open without a room.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def authorize_join(
        self,
        connection_id: str,
        claimed_recipient_id: int,
        principal: Principal,
    ) -> RoomKey | None:
        if principal.is_user and principal.subject_id == claimed_recipient_id:
            return RoomKey(recipient_id=claimed_recipient_id)
        logger.warning(
            "Denied join of recipient room %s for %s on connection %s",
            claimed_recipient_id, principal.principal_key, connection_id,
        )
        return None

    def join(
        self,
        connection_id: str,
        claimed_recipient_id: int,
        principal: Principal,
    ) -> RoomKey | None:
        room = self.authorize_join(connection_id, claimed_recipient_id, principal)
        if room is None:
            return None
        if not self._registry.join_room(connection_id, room):
            return None
        return room
