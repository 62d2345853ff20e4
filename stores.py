"""
Billboard Rental Core - Persistence Ports
=========================================

Two ports the coordinator depends on, plus their SQLAlchemy implementations:

- ReservationStore: CRUD and conflict queries over reservations
- ResourceAvailabilityStore: reads/writes of a resource's availability state

Every method takes an optional `tx`. When given, the call joins that
transaction; otherwise it runs in a short transaction of its own.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional, Set

from sqlalchemy import case, delete, func, select, update

from database import ReservationRow, ResourceRow, ResourceState
from schemas import ReservationDTO, ResourceDTO
from transactions import SqlAlchemyTransactor, Transaction


# ==========================================
# PORTS
# ==========================================

class ReservationStore(ABC):

    @abstractmethod
    def find_conflicting(self, tenant_id: str, resource_id: str, start: date, end: date,
                         tx: Optional[Transaction] = None) -> Optional[ReservationDTO]:
        """Any reservation on the resource whose closed range overlaps [start, end]."""

    @abstractmethod
    def create(self, tenant_id: str, resource_id: str, client_id: str, start: date, end: date,
               tx: Optional[Transaction] = None) -> ReservationDTO:
        ...

    @abstractmethod
    def find_by_id(self, tenant_id: str, reservation_id: str,
                   tx: Optional[Transaction] = None) -> Optional[ReservationDTO]:
        ...

    @abstractmethod
    def delete(self, tenant_id: str, reservation_id: str, tx: Optional[Transaction] = None) -> bool:
        """True if a row was removed."""

    @abstractmethod
    def find_other_active_on_resource(self, tenant_id: str, resource_id: str,
                                      excluding_reservation_id: Optional[str], reference_date: date,
                                      tx: Optional[Transaction] = None) -> Optional[ReservationDTO]:
        """An active-on-reference_date reservation other than the excluded one."""

    @abstractmethod
    def list_by_resource(self, tenant_id: str, resource_id: str,
                         tx: Optional[Transaction] = None) -> Iterator[ReservationDTO]:
        """Most recent start date first. One pass only; call again to re-query."""

    @abstractmethod
    def find_overlapping_resource_ids(self, tenant_id: str, start: date, end: date,
                                      tx: Optional[Transaction] = None) -> Set[str]:
        ...

    @abstractmethod
    def client_has_reservations_ending_on_or_after(self, tenant_id: str, client_id: str,
                                                   reference_date: date,
                                                   tx: Optional[Transaction] = None) -> bool:
        ...


class ResourceAvailabilityStore(ABC):

    @abstractmethod
    def set_available(self, tenant_id: str, resource_id: str, available: bool,
                      tx: Optional[Transaction] = None) -> bool:
        """
        AVAILABLE <-> BOOKED. A resource in MAINTENANCE keeps its state.
        Returns whether the resource exists in the tenant.
        """

    @abstractmethod
    def set_state(self, tenant_id: str, resource_id: str, state: ResourceState,
                  tx: Optional[Transaction] = None) -> bool:
        ...

    @abstractmethod
    def is_currently_booked(self, tenant_id: str, resource_id: str, reference_date: date,
                            tx: Optional[Transaction] = None) -> bool:
        ...

    @abstractmethod
    def get(self, tenant_id: str, resource_id: str,
            tx: Optional[Transaction] = None) -> Optional[ResourceDTO]:
        ...

    @abstractmethod
    def add(self, tenant_id: str, label: str = "", tx: Optional[Transaction] = None) -> ResourceDTO:
        """Registers a resource in its initial state, AVAILABLE."""

    @abstractmethod
    def list_resources(self, tenant_id: Optional[str] = None,
                       tx: Optional[Transaction] = None) -> List[ResourceDTO]:
        """All resources (of one tenant, or of every tenant), ordered by label then id."""


# ==========================================
# SQLALCHEMY IMPLEMENTATIONS
# ==========================================

class _SqlStore:

    def __init__(self, transactor: SqlAlchemyTransactor):
        self.transactor = transactor

    @contextmanager
    def _session(self, tx: Optional[Transaction]):
        """Uses the caller's session when a transaction is supplied, else opens one."""
        if tx is not None:
            yield tx.session
            return
        with self.transactor.begin() as own:
            yield own.session


class SqlReservationStore(_SqlStore, ReservationStore):

    @staticmethod
    def _scoped(tenant_id: str, resource_id: str):
        return select(ReservationRow).where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.resource_id == resource_id,
        )

    def find_conflicting(self, tenant_id, resource_id, start, end, tx=None):
        stmt = self._scoped(tenant_id, resource_id).where(
            ReservationRow.start_date <= end,
            ReservationRow.end_date >= start,
        ).limit(1)
        with self._session(tx) as session:
            row = session.scalars(stmt).first()
            return ReservationDTO.model_validate(row) if row else None

    def create(self, tenant_id, resource_id, client_id, start, end, tx=None):
        row = ReservationRow(
            tenant_id=tenant_id,
            resource_id=resource_id,
            client_id=client_id,
            start_date=start,
            end_date=end,
        )
        with self._session(tx) as session:
            session.add(row)
            session.flush()
            return ReservationDTO.model_validate(row)

    def find_by_id(self, tenant_id, reservation_id, tx=None):
        stmt = select(ReservationRow).where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.id == reservation_id,
        )
        with self._session(tx) as session:
            row = session.scalars(stmt).first()
            return ReservationDTO.model_validate(row) if row else None

    def delete(self, tenant_id, reservation_id, tx=None):
        stmt = delete(ReservationRow).where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.id == reservation_id,
        )
        with self._session(tx) as session:
            result = session.execute(stmt, execution_options={"synchronize_session": False})
            return result.rowcount > 0

    def find_other_active_on_resource(self, tenant_id, resource_id, excluding_reservation_id,
                                      reference_date, tx=None):
        stmt = self._scoped(tenant_id, resource_id).where(
            ReservationRow.start_date <= reference_date,
            ReservationRow.end_date >= reference_date,
        )
        if excluding_reservation_id:
            stmt = stmt.where(ReservationRow.id != excluding_reservation_id)
        with self._session(tx) as session:
            row = session.scalars(stmt.limit(1)).first()
            return ReservationDTO.model_validate(row) if row else None

    def list_by_resource(self, tenant_id, resource_id, tx=None):
        stmt = self._scoped(tenant_id, resource_id).order_by(
            ReservationRow.start_date.desc(),
            ReservationRow.created_at.desc(),
            ReservationRow.id.desc(),
        )
        with self._session(tx) as session:
            rows = [ReservationDTO.model_validate(r) for r in session.scalars(stmt)]
        return iter(rows)

    def find_overlapping_resource_ids(self, tenant_id, start, end, tx=None):
        stmt = select(ReservationRow.resource_id).distinct().where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.start_date <= end,
            ReservationRow.end_date >= start,
        )
        with self._session(tx) as session:
            return set(session.scalars(stmt))

    def client_has_reservations_ending_on_or_after(self, tenant_id, client_id, reference_date, tx=None):
        stmt = select(func.count(ReservationRow.id)).where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.client_id == client_id,
            ReservationRow.end_date >= reference_date,
        )
        with self._session(tx) as session:
            return (session.scalar(stmt) or 0) > 0


class SqlResourceStore(_SqlStore, ResourceAvailabilityStore):

    @staticmethod
    def _where(tenant_id: str, resource_id: str):
        return (ResourceRow.tenant_id == tenant_id, ResourceRow.id == resource_id)

    def set_available(self, tenant_id, resource_id, available, tx=None):
        target = ResourceState.AVAILABLE if available else ResourceState.BOOKED
        in_maintenance = ResourceRow.state == ResourceState.MAINTENANCE.value
        stmt = (
            update(ResourceRow)
            .where(*self._where(tenant_id, resource_id))
            .values(
                state=case((in_maintenance, ResourceState.MAINTENANCE.value), else_=target.value),
                available=case((in_maintenance, False), else_=available),
            )
        )
        with self._session(tx) as session:
            result = session.execute(stmt, execution_options={"synchronize_session": False})
            return result.rowcount > 0

    def set_state(self, tenant_id, resource_id, state, tx=None):
        stmt = (
            update(ResourceRow)
            .where(*self._where(tenant_id, resource_id))
            .values(state=state.value, available=state == ResourceState.AVAILABLE)
        )
        with self._session(tx) as session:
            result = session.execute(stmt, execution_options={"synchronize_session": False})
            return result.rowcount > 0

    def is_currently_booked(self, tenant_id, resource_id, reference_date, tx=None):
        stmt = select(ReservationRow.id).where(
            ReservationRow.tenant_id == tenant_id,
            ReservationRow.resource_id == resource_id,
            ReservationRow.start_date <= reference_date,
            ReservationRow.end_date >= reference_date,
        ).limit(1)
        with self._session(tx) as session:
            return session.scalars(stmt).first() is not None

    def get(self, tenant_id, resource_id, tx=None):
        stmt = select(ResourceRow).where(*self._where(tenant_id, resource_id)).execution_options(
            populate_existing=True
        )
        with self._session(tx) as session:
            row = session.scalars(stmt).first()
            return ResourceDTO.model_validate(row) if row else None

    def add(self, tenant_id, label="", tx=None):
        row = ResourceRow(
            tenant_id=tenant_id,
            label=label,
            state=ResourceState.AVAILABLE.value,
            available=True,
        )
        with self._session(tx) as session:
            session.add(row)
            session.flush()
            return ResourceDTO.model_validate(row)

    def list_resources(self, tenant_id=None, tx=None):
        stmt = select(ResourceRow).order_by(ResourceRow.label, ResourceRow.id).execution_options(
            populate_existing=True
        )
        if tenant_id is not None:
            stmt = stmt.where(ResourceRow.tenant_id == tenant_id)
        with self._session(tx) as session:
            return [ResourceDTO.model_validate(r) for r in session.scalars(stmt)]

