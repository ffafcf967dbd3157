from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from inbox_service.api.v1.schemas.common import PaginatedResponse
from inbox_service.application.dto.message import SendMessageDTO


class SendMessageRequest(BaseModel):
    """Send payload shared by HTTP and WebSocket.

    Only types are checked here; content rules live in the service so both
    transports reject the same inputs. A ``sender_id`` in the payload is
    ignored: the sender is always the authenticated operator.
    """

    recipient_id: int | None = None
    title: str | None = None
    body: str | None = None
    category: str | None = None
    reference_ids: dict[str, str | None] = Field(default_factory=dict)

    def to_dto(self) -> SendMessageDTO:
        return SendMessageDTO(
            recipient_id=self.recipient_id,
            title=self.title,
            body=self.body,
            category=self.category,
            reference_ids=dict(self.reference_ids),
        )


class MessageResponse(BaseModel):
    id: UUID
    recipient_id: int
    sender_id: int
    title: str
    body: str
    category: str
    reference_ids: dict[str, str]
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InboxResponse(PaginatedResponse[MessageResponse]):
    unread_count: int
