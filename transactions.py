"""
Billboard Rental Core - Transactions
====================================

A Transactor opens the unit of work every multi-step booking operation runs in.
Whether work is transactional is decided by which Transactor gets injected,
never by a flag inside business logic.

Usage:
    with transactor.begin() as tx:
        tx.lock_resource(tenant_id, resource_id)
        reservations.find_conflicting(..., tx=tx)
        reservations.create(..., tx=tx)
    # committed here; any exception rolled everything back
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import ResourceRow
from exceptions import BookingError, ConflictError, InternalError
from logging_config import get_logger

logger = get_logger(__name__)

# SQLSTATEs meaning "lost a race, try again"
_RETRYABLE_CONFLICT_STATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
}
_EXCLUSION_VIOLATION = "23P01"


class Transaction(ABC):
    """Handle passed to store methods so they join the same unit of work."""

    @abstractmethod
    def lock_resource(self, tenant_id: str, resource_id: str):
        """Serializes work on (tenant_id, resource_id) until this transaction ends."""


class Transactor(ABC):

    @abstractmethod
    def begin(self):
        """Context manager yielding a Transaction; commit on success, rollback on error."""


# ==========================================
# SQLALCHEMY IMPLEMENTATION
# ==========================================

class SqlTransaction(Transaction):

    def __init__(self, session: Session):
        self.session = session

    def lock_resource(self, tenant_id: str, resource_id: str):
        # SQLite renders no FOR UPDATE; BEGIN IMMEDIATE already holds the write lock
        self.session.execute(
            select(ResourceRow.id)
            .where(ResourceRow.tenant_id == tenant_id, ResourceRow.id == resource_id)
            .with_for_update()
        )


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_db_error(error: SQLAlchemyError) -> BookingError:
    """Maps a SQLAlchemy failure onto the booking error taxonomy."""
    if isinstance(error, IntegrityError):
        if _sqlstate(error) == _EXCLUSION_VIOLATION or "reservations_no_overlap" in str(error.orig):
            return ConflictError("overlapping reservation")
        return ConflictError(f"integrity violation: {error.orig}")
    if isinstance(error, OperationalError):
        state = _sqlstate(error)
        if state in _RETRYABLE_CONFLICT_STATES or "database is locked" in str(error.orig):
            return ConflictError("resource busy, retry the request", retryable=True)
        return InternalError(f"datastore unavailable: {error.orig}")
    return InternalError(f"datastore failure: {error}")


class SqlAlchemyTransactor(Transactor):
    """Session-per-transaction with bounded lock and statement timeouts."""

    def __init__(self, session_factory: sessionmaker, timeout_seconds: float = 5.0):
        self.session_factory = session_factory
        self.timeout_ms = int(timeout_seconds * 1000)

    def _apply_timeouts(self, session: Session):
        if session.get_bind().dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL lock_timeout = {self.timeout_ms}"))
            session.execute(text(f"SET LOCAL statement_timeout = {self.timeout_ms}"))

    @contextmanager
    def begin(self) -> Iterator[SqlTransaction]:
        session = self.session_factory()
        try:
            self._apply_timeouts(session)
            yield SqlTransaction(session)
            session.commit()
        except BookingError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            translated = translate_db_error(e)
            # Conflicts are reported by the caller; only real datastore failures are logged here
            if isinstance(translated, InternalError):
                logger.error(f"Transaction aborted: {translated.message} ({e.__class__.__name__})")
            else:
                logger.debug(f"Transaction aborted: {translated.code} ({e.__class__.__name__})")
            raise translated from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
