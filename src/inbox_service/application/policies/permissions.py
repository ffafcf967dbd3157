from __future__ import annotations

from inbox_service.application.dto.principal import Principal
from inbox_service.application.exceptions import ForbiddenError, NotFoundError
from inbox_service.domain.entities.message import Message


def assert_operator(principal: Principal) -> None:
    if not principal.is_operator:
        raise ForbiddenError("Operator access required")


def assert_recipient_access(principal: Principal, message: Message | None) -> Message:
    """Raise if the message doesn't exist or isn't addressed to the principal."""
    if message is None:
        raise NotFoundError("Message not found")

    # Operators don't own inboxes; only the addressed user may touch read state
    if not principal.is_user or message.recipient_id != principal.subject_id:
        raise ForbiddenError("Message is addressed to another recipient")

    return message
