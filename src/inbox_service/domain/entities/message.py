from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

TITLE_MAX_LENGTH = 200
BODY_MAX_LENGTH = 2000
REFERENCE_MAX_COUNT = 10
REFERENCE_KEY_MAX_LENGTH = 50
REFERENCE_VALUE_MAX_LENGTH = 100


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    recipient_id: int
    sender_id: int
    title: str
    body: str
    category: str
    created_at: datetime
    reference_ids: dict[str, str] = field(default_factory=dict)
    is_read: bool = False
    read_at: datetime | None = None
