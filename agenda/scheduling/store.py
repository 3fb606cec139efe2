from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.core.errors import ConflictError, TransientStoreError

STORE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


@contextmanager
def store_guard(
    db: Session,
    conflict_message: str = 'The record conflicts with existing data.',
    conflict_code: str = 'conflict',
):
    """Roll back and translate store failures into booking error kinds."""
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflict_message, code=conflict_code) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientStoreError(STORE_UNAVAILABLE_DETAIL) from exc
