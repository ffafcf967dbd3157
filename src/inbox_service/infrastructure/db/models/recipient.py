from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from inbox_service.infrastructure.db.base import Base


class RecipientModel(Base):
    """Accounts known from the account service's event stream."""

    __tablename__ = "recipients"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
