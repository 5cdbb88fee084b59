"""Write helpers shared by the service layer."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceError
from .extensions import db

logger = logging.getLogger(__name__)


def commit_or_raise(action: str, session: Session | None = None) -> None:
    """Commit the unit of work or roll back and raise PersistenceError.

    No retry is attempted; the caller sees the failure.
    """
    session = session or db.session
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to %s", action, exc_info=exc)
        raise PersistenceError(f"Failed to {action}") from exc
