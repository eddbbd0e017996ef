"""Transaction helpers shared by the service layer."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from murmur.core.errors import StorageError

logger = logging.getLogger(__name__)


def commit_or_raise(db: Session, action: str) -> None:
    """Commit the session, rolling back and raising StorageError on failure.

    Args:
        db: Session holding the pending changes
        action: Short label used in the log record and the error message
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Storage failure during %s", action, exc_info=True)
        raise StorageError(f"Failed to {action}") from exc
