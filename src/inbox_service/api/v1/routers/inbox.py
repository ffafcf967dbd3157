from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from inbox_service.api.deps import CurrentPrincipal, UoWDep
from inbox_service.api.v1.schemas.message import InboxResponse, MessageResponse
from inbox_service.application.dto.message import InboxFilterDTO
from inbox_service.domain.value_objects.enums import MessageCategory
from inbox_service.services import message_service, read_state_service

router = APIRouter(prefix="/api/v1/inbox", tags=["inbox"])


@router.get("/messages", response_model=InboxResponse)
async def list_my_messages(
    principal: CurrentPrincipal,
    uow: UoWDep,
    category: MessageCategory | None = Query(None),
    unread_only: bool = Query(False),
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> InboxResponse:
    filters = InboxFilterDTO(
        category=category,
        unread_only=unread_only,
        cursor=cursor,
        limit=limit,
    )
    page = await message_service.list_inbox(principal, filters, uow)
    return InboxResponse(
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in page.items],
        next_cursor=page.next_cursor,
        unread_count=page.unread_count or 0,
    )


@router.patch("/messages/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await read_state_service.mark_read(message_id, principal, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)
