"""
Shared repository behaviour.
Maps lost optimistic updates and duplicate idempotency keys to ConcurrencyConflictException.
"""
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from study_guardian.exceptions import ConcurrencyConflictException

logger = logging.getLogger("study_guardian.repositories")


class BaseRepository:
    """Base class holding the session and the commit discipline"""

    entity_name = "aggregate"

    def __init__(self, db: Session):
        self.db = db

    def add(self, instance):
        self.db.add(instance)
        return instance

    def flush(self) -> None:
        """Flush pending changes, surfacing conflicts early"""
        try:
            self.db.flush()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            logger.warning(f"Flush conflict on {self.entity_name}: {e}")
            raise ConcurrencyConflictException(self.entity_name, str(e.__class__.__name__)) from e

    def commit(self) -> None:
        """
        Commit the unit of work.

        Raises:
            ConcurrencyConflictException: another writer changed the same
                aggregate version or inserted the same idempotency key first
        """
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            logger.warning(f"Commit conflict on {self.entity_name}: {e}")
            raise ConcurrencyConflictException(self.entity_name, str(e.__class__.__name__)) from e


def run_with_retry(db: Session, operation, description: str, attempts: int = 2):
    """
    Run a unit of work, retrying it after a lost optimistic update.

    The operation must re-read whatever it mutates, since the session is
    rolled back between attempts.

    Raises:
        ConcurrencyConflictException: every attempt conflicted
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrencyConflictException as e:
            db.rollback()
            if attempt == attempts:
                logger.error(f"Giving up on {description} after {attempts} attempts: {e}")
                raise
            logger.warning(f"Retrying {description} after conflict: {e}")
