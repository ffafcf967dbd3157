"""Import all models so Base.metadata sees every table."""
from inbox_service.infrastructure.db.models.message import MessageModel
from inbox_service.infrastructure.db.models.recipient import RecipientModel

__all__ = [
    "MessageModel",
    "RecipientModel",
]
