"""Seed development data: a few recipients and report messages."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

from inbox_service.domain.entities.message import Message
from inbox_service.domain.value_objects.enums import MessageCategory
from inbox_service.infrastructure.db.uow import sqlalchemy_uow

logger = logging.getLogger(__name__)

OPERATOR_ID = 1
RECIPIENT_IDS = (42, 43)


async def seed() -> None:
    async with sqlalchemy_uow() as uow:
        now = datetime.now(timezone.utc)

        for recipient_id in RECIPIENT_IDS:
            await uow.recipients_w.upsert(recipient_id, active=True, ts=now)

        messages_data = [
            (42, MessageCategory.SUMMARY, "Order Delivered Report", "Your order #12345 was delivered.",
             {"order_id": "12345", "invoice_id": "INV-12345"}),
            (42, MessageCategory.WARNING, "Order Cancellation Report", "Order #12377 was cancelled.",
             {"order_id": "12377", "payment_id": "Cash on Delivery"}),
            (43, MessageCategory.INFO, "Order Processing Update", "Order #12401 is being prepared.",
             {"order_id": "12401"}),
        ]
        for i, (recipient_id, category, title, body, refs) in enumerate(messages_data):
            await uow.messages_w.create(
                Message(
                    id=uuid.uuid4(),
                    recipient_id=recipient_id,
                    sender_id=OPERATOR_ID,
                    title=title,
                    body=body,
                    category=category.value,
                    reference_ids=refs,
                    created_at=now + timedelta(seconds=i),
                )
            )

        await uow.commit()
        logger.info("Seeded %d recipients, %d messages", len(RECIPIENT_IDS), len(messages_data))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
