from collections.abc import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.db.session import SessionLocal
from stockdesk.services.errors import TransactionError


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db: Session) -> None:
    """Commit the request's unit of work, or roll all of it back."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionError("Could not save changes; nothing was written") from exc
