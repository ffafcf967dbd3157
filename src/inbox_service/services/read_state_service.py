from __future__ import annotations

import logging
import uuid

from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import NotFoundError
from inbox_service.application.policies.permissions import assert_recipient_access
from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.message import Message

logger = logging.getLogger(__name__)


async def mark_read(
    message_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    clock: Clock | None = None,
) -> Message:
    """Mark a message as read by its recipient.

    Calling it again is a successful no-op that returns the original
    ``read_at``; only the first transition is written.
    """
    message = await uow.messages.get_by_id(message_id)
    message = assert_recipient_access(principal, message)

    if message.is_read:
        return message

    updated = await uow.messages_w.mark_read(message_id, (clock or SystemClock()).now())
    if updated is None:
        # A concurrent call won the transition; report its timestamp
        await uow.rollback()
        current = await uow.messages.get_by_id(message_id)
        if current is None:
            raise NotFoundError("Message not found")
        return current

    await uow.commit()
    logger.debug("Message %s read by recipient %d", message_id, principal.subject_id)
    return updated
