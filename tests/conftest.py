import os
import tempfile
from datetime import date

# Settings.from_env() (run when api.main is imported) must not point at the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="billboard-logs-"))

import pytest

from database import create_db_engine, init_db, make_session_factory
from memory_stores import InMemoryReservationStore, InMemoryResourceStore, InMemoryTransactor
from services import BookingCoordinator
from stores import SqlReservationStore, SqlResourceStore
from transactions import SqlAlchemyTransactor

TODAY = date(2025, 1, 15)
TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
CLIENT = "client-1"


def fixed_today():
    return TODAY


def make_memory_coordinator(timeout_seconds: float = 2.0) -> BookingCoordinator:
    reservations = InMemoryReservationStore()
    return BookingCoordinator(
        reservations,
        InMemoryResourceStore(reservations),
        InMemoryTransactor(timeout_seconds),
        today=fixed_today,
    )


def make_sql_coordinator(database_url: str = "sqlite://", timeout_seconds: float = 2.0) -> BookingCoordinator:
    engine = create_db_engine(database_url, timeout_seconds)
    init_db(engine)
    transactor = SqlAlchemyTransactor(make_session_factory(engine), timeout_seconds)
    return BookingCoordinator(
        SqlReservationStore(transactor),
        SqlResourceStore(transactor),
        transactor,
        today=fixed_today,
    )


@pytest.fixture(params=["memory", "sql"])
def coordinator(request):
    """The same behaviour is expected from both backends."""
    if request.param == "memory":
        return make_memory_coordinator()
    return make_sql_coordinator()


@pytest.fixture
def sql_coordinator():
    return make_sql_coordinator()


@pytest.fixture
def resource(coordinator):
    return coordinator.register_resource(TENANT, "PL-001")
