from __future__ import annotations

import logging
import uuid

from inbox_service.application.dto.message import (
    InboxFilterDTO,
    MessageFilterDTO,
    MessagePage,
    SendMessageDTO,
)
from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import NotFoundError, StoreError, ValidationError
from inbox_service.application.pagination import encode_cursor
from inbox_service.application.policies.permissions import assert_operator
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.message import (
    BODY_MAX_LENGTH,
    REFERENCE_KEY_MAX_LENGTH,
    REFERENCE_MAX_COUNT,
    REFERENCE_VALUE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Message,
)
from inbox_service.domain.value_objects.enums import MessageCategory

logger = logging.getLogger(__name__)


async def send_message(
    dto: SendMessageDTO,
    principal: Principal,
    uow: UnitOfWork,
    clock: Clock | None = None,
) -> Message:
    """Validate and persist a message addressed to a single recipient.

    The sender is always the authenticated operator. The message is
    committed before this returns, so callers may dispatch it right away.
    """
    assert_operator(principal)

    recipient_id = _require_recipient_id(dto.recipient_id)
    title = _require_text("title", dto.title, TITLE_MAX_LENGTH)
    body = _require_text("body", dto.body, BODY_MAX_LENGTH)
    category = _require_category(dto.category)
    reference_ids = _clean_references(dto.reference_ids)

    if not await uow.recipients.exists(recipient_id):
        raise NotFoundError("Recipient not found")

    msg = Message(
        id=uuid.uuid4(),
        recipient_id=recipient_id,
        sender_id=principal.subject_id,
        title=title,
        body=body,
        category=category.value,
        reference_ids=reference_ids,
        created_at=(clock or SystemClock()).now(),
    )

    try:
        msg = await uow.messages_w.create(msg)
        await uow.commit()
    except StoreError:
        await uow.rollback()
        logger.warning("Message to recipient %d not persisted", recipient_id)
        raise

    logger.info(
        "Message %s persisted for recipient %d by operator %d",
        msg.id, msg.recipient_id, msg.sender_id,
    )
    return msg


async def list_inbox(
    principal: Principal,
    filters: InboxFilterDTO,
    uow: UnitOfWork,
) -> MessagePage:
    """The caller's own messages, newest first, with the total unread count."""
    items = await uow.messages.list_for_recipient(principal.subject_id, filters)
    unread = await uow.messages.count_unread(principal.subject_id)
    return MessagePage(
        items=items,
        next_cursor=_next_cursor(items, filters.limit),
        unread_count=unread,
    )


async def list_messages(
    principal: Principal,
    filters: MessageFilterDTO,
    uow: UnitOfWork,
) -> MessagePage:
    assert_operator(principal)
    items = await uow.messages.list_all(filters)
    return MessagePage(items=items, next_cursor=_next_cursor(items, filters.limit))


def _next_cursor(items: list[Message], limit: int) -> str | None:
    if len(items) < limit:
        return None
    last = items[-1]
    return encode_cursor(last.created_at, last.id)


def _require_recipient_id(value: int | None) -> int:
    if value is None:
        raise ValidationError("Recipient ID is required")
    return value


def _require_text(name: str, value: str | None, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{name} cannot be empty")
    if len(text) > max_length:
        raise ValidationError(f"{name} cannot exceed {max_length} characters")
    return text


def _require_category(value: str | None) -> MessageCategory:
    try:
        return MessageCategory(value)
    except ValueError:
        allowed = ", ".join(c.value for c in MessageCategory)
        raise ValidationError(f"Valid category is required ({allowed})") from None


def _clean_references(refs: dict[str, str | None]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in refs.items():
        value = (value or "").strip()
        if not value:
            continue
        if not key or len(key) > REFERENCE_KEY_MAX_LENGTH:
            raise ValidationError(f"Invalid reference key: {key!r}")
        if len(value) > REFERENCE_VALUE_MAX_LENGTH:
            raise ValidationError(
                f"Reference {key} cannot exceed {REFERENCE_VALUE_MAX_LENGTH} characters"
            )
        cleaned[key] = value
    if len(cleaned) > REFERENCE_MAX_COUNT:
        raise ValidationError(f"At most {REFERENCE_MAX_COUNT} references are allowed")
    return cleaned
