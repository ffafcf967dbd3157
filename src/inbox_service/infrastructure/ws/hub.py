from __future__ import annotations

from dataclasses import dataclass

from inbox_service.infrastructure.ws.authorization import RoomAuthorizer
from inbox_service.infrastructure.ws.dispatcher import BroadcastDispatcher
from inbox_service.infrastructure.ws.registry import ConnectionRegistry


@dataclass(frozen=True, slots=True)
class RealtimeHub:
    """Registry plus the components that share it, owned by one app instance."""

    registry: ConnectionRegistry
    authorizer: RoomAuthorizer
    dispatcher: BroadcastDispatcher

    @classmethod
    def create(cls, *, send_queue_size: int = 256) -> RealtimeHub:
        registry = ConnectionRegistry(send_queue_size=send_queue_size)
        return cls(
            registry=registry,
            authorizer=RoomAuthorizer(registry),
            dispatcher=BroadcastDispatcher(registry),
        )
