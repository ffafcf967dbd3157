from __future__ import annotations

from inbox_service.domain.entities.message import Message
from inbox_service.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        recipient_id=model.recipient_id,
        sender_id=model.sender_id,
        title=model.title,
        body=model.body,
        category=model.category,
        reference_ids=dict(model.reference_ids or {}),
        is_read=model.is_read,
        read_at=model.read_at,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict:
    return {
        "id": entity.id,
        "recipient_id": entity.recipient_id,
        "sender_id": entity.sender_id,
        "title": entity.title,
        "body": entity.body,
        "category": entity.category,
        "reference_ids": entity.reference_ids,
        "is_read": entity.is_read,
        "read_at": entity.read_at,
        "created_at": entity.created_at,
    }
