"""Single send entry point shared by the HTTP and WebSocket adapters."""
from __future__ import annotations

import logging

from inbox_service.application.dto.message import SendMessageDTO
from inbox_service.application.dto.principal import Principal
from inbox_service.application.ports.dispatch import MessagePublisher
from inbox_service.application.uow import UnitOfWork
from inbox_service.domain.entities.message import Message
from inbox_service.services import message_service

logger = logging.getLogger(__name__)


async def send_and_publish(
    dto: SendMessageDTO,
    principal: Principal,
    uow: UnitOfWork,
    publisher: MessagePublisher,
) -> Message:
    """Persist a message, then push it to the recipient's live connections.

    Any error raised before the commit aborts the send and nothing is
    published. Once persisted the send has succeeded; publishing is
    best-effort and an offline recipient picks the message up from the
    inbox listing.
    """
    message = await message_service.send_message(dto, principal, uow)

    try:
        delivered = publisher.publish(message)
    except Exception:
        logger.exception("Dispatch of message %s failed", message.id)
    else:
        logger.debug("Message %s queued to %d connection(s)", message.id, delivered)

    return message
