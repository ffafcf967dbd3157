from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from inbox_service.application.exceptions import StoreError

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver/ORM failures as ``StoreError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store operation %s failed: %s", operation, exc)
        raise StoreError("Message store unavailable, try again") from exc
