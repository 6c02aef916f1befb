"""
Transaction helpers for the stock engine.

``atomic`` commits the session's unit of work or rolls it back and maps
SQLAlchemy failures onto ledger errors. ``retry_on_conflict`` re-runs a whole
operation when an optimistic write loses a race.
"""
from contextlib import contextmanager
from functools import wraps
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .exceptions import ConcurrencyConflict, StorageFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session):
    """Run the enclosed block as one transaction"""
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrencyConflict("Stock record was modified by another request") from e
    except IntegrityError as e:
        db.rollback()
        failure = StorageFailure("Constraint violation", {"detail": str(e.orig)})
        failure.status_code = 409
        raise failure from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure("Storage error", {"detail": str(e)}) from e
    except Exception:
        db.rollback()
        raise


def retry_on_conflict(func):
    """Retry ``func(db, ...)`` up to LEDGER_MAX_RETRIES times on ConcurrencyConflict"""
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        attempts = max(1, settings.LEDGER_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                return func(db, *args, **kwargs)
            except ConcurrencyConflict:
                if attempt >= attempts:
                    logger.warning(f"{func.__name__}: giving up after {attempts} conflicting attempts")
                    raise
                logger.warning(f"{func.__name__}: concurrency conflict, retrying ({attempt}/{attempts})")
    return wrapper
