from __future__ import annotations

from fastapi import APIRouter, Query

from inbox_service.api.deps import CurrentOperator, HubDep, UoWDep
from inbox_service.api.v1.schemas.common import PaginatedResponse
from inbox_service.api.v1.schemas.message import MessageResponse, SendMessageRequest
from inbox_service.application.dto.message import MessageFilterDTO
from inbox_service.domain.value_objects.enums import MessageCategory
from inbox_service.services import delivery_service, message_service

router = APIRouter(prefix="/api/v1/operator/messages", tags=["operator"])


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    operator: CurrentOperator,
    uow: UoWDep,
    hub: HubDep,
) -> MessageResponse:
    msg = await delivery_service.send_and_publish(
        body.to_dto(), operator, uow, hub.dispatcher,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.get("", response_model=PaginatedResponse[MessageResponse])
async def list_messages(
    operator: CurrentOperator,
    uow: UoWDep,
    recipient_id: int | None = Query(None),
    category: MessageCategory | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[MessageResponse]:
    filters = MessageFilterDTO(
        recipient_id=recipient_id,
        category=category,
        cursor=cursor,
        limit=limit,
    )
    page = await message_service.list_messages(operator, filters, uow)
    return PaginatedResponse[MessageResponse](
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in page.items],
        next_cursor=page.next_cursor,
    )
