from __future__ import annotations

import logging

from inbox_service.application.ports.clock import Clock, SystemClock
from inbox_service.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


async def register_recipient(
    recipient_id: int,
    uow: UnitOfWork,
    clock: Clock | None = None,
) -> None:
    await uow.recipients_w.upsert(recipient_id, active=True, ts=(clock or SystemClock()).now())
    await uow.commit()
    logger.info("Recipient %d registered", recipient_id)


async def remove_recipient(
    recipient_id: int,
    uow: UnitOfWork,
    clock: Clock | None = None,
) -> None:
    """Stop accepting new messages for an account; existing messages are kept."""
    await uow.recipients_w.deactivate(recipient_id, (clock or SystemClock()).now())
    await uow.commit()
    logger.info("Recipient %d deactivated", recipient_id)
