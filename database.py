"""
Billboard Rental Core - Database Models
=======================================

SQLAlchemy tables for the two aggregates the booking core touches:
- resources: rentable media (billboards) with their availability state
- reservations: tenant-scoped date ranges binding a client to a resource

Engine setup also installs the per-dialect concurrency guards:
- SQLite: write transactions start with BEGIN IMMEDIATE (writers serialize)
- PostgreSQL: EXCLUDE constraint rejecting overlapping date ranges per resource
"""

import enum
import secrets
from datetime import datetime, timezone

from sqlalchemy import (
    DDL, Boolean, Column, Date, DateTime, Index, String, create_engine, event
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def new_object_id() -> str:
    """24-char hex identifier, same shape as the surrounding system's ids."""
    return secrets.token_hex(12)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceState(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    MAINTENANCE = "MAINTENANCE"


# ==========================================
# MODELS (Tables)
# ==========================================

class ResourceRow(Base):
    __tablename__ = "resources"
    id = Column(String(24), primary_key=True, default=new_object_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    label = Column(String, nullable=False, default="")
    state = Column(String(16), nullable=False, default=ResourceState.AVAILABLE.value)
    # Legacy flag read by the rest of the system; always state == AVAILABLE
    available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ReservationRow(Base):
    __tablename__ = "reservations"
    id = Column(String(24), primary_key=True, default=new_object_id)
    tenant_id = Column(String(64), nullable=False)
    # No FK: resources belong to the metadata context
    resource_id = Column(String(24), nullable=False)
    client_id = Column(String(24), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_reservations_resource_range", "tenant_id", "resource_id", "start_date", "end_date"),
        Index("ix_reservations_client_end", "tenant_id", "client_id", "end_date"),
    )


# Overlap backstop for PostgreSQL: a lost race surfaces as IntegrityError
event.listen(
    ReservationRow.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    ReservationRow.__table__,
    "after_create",
    DDL(
        "ALTER TABLE reservations ADD CONSTRAINT reservations_no_overlap "
        "EXCLUDE USING gist (tenant_id WITH =, resource_id WITH =, "
        "daterange(start_date, end_date, '[]') WITH &&)"
    ).execute_if(dialect="postgresql"),
)


# ==========================================
# ENGINE / SESSIONS
# ==========================================

def _install_sqlite_write_lock(engine: Engine):
    """
    pysqlite defers BEGIN until the first write, which lets two transactions
    both read "no conflict". Emitting BEGIN IMMEDIATE takes the write lock up front.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Creates an engine with the concurrency guards for its dialect."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout_seconds}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine = create_engine(
                database_url, connect_args=connect_args, poolclass=StaticPool, echo=False
            )
        else:
            engine = create_engine(database_url, connect_args=connect_args, echo=False)
        _install_sqlite_write_lock(engine)
        return engine

    return create_engine(database_url, pool_pre_ping=True, echo=False)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine):
    Base.metadata.create_all(engine)
