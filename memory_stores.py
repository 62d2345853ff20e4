"""
Billboard Rental Core - In-Memory Backend
=========================================

Process-local implementations of the Transactor and both store ports.
Selected with BOOKING_BACKEND=memory (local runs, demos, tests).

- Locks are per (tenant_id, resource_id) and bounded by a timeout; a lock
  nobody holds or waits for is dropped from the registry
- Writes made inside a transaction are staged on it and applied on commit,
  so other callers never see them before then and a rollback just discards them
- Reads inside a transaction see its own staged writes
"""

import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, Iterator, List, Optional, Tuple

from availability import is_active_on, overlaps
from database import ResourceState, new_object_id
from exceptions import ConflictError
from logging_config import get_logger
from schemas import ReservationDTO, ResourceDTO
from stores import ReservationStore, ResourceAvailabilityStore
from transactions import Transaction, Transactor

logger = get_logger(__name__)

LockKey = Tuple[str, str]

# Staged value meaning "row removed"
_DELETED = object()


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class InMemoryTransaction(Transaction):

    def __init__(self, transactor: "InMemoryTransactor"):
        self._transactor = transactor
        self._held: List[LockKey] = []
        self._staged: Dict[int, Tuple["_InMemoryTable", Dict[Hashable, Any]]] = {}

    def lock_resource(self, tenant_id: str, resource_id: str):
        key = (tenant_id, resource_id)
        if key in self._held:
            return
        if not self._transactor.acquire(key):
            logger.warning(f"Lock wait on resource {resource_id} exceeded {self._transactor.timeout_seconds}s")
            raise ConflictError("resource busy, retry the request", retryable=True)
        self._held.append(key)

    def staged(self, table: "_InMemoryTable") -> Dict[Hashable, Any]:
        """Pending writes of this transaction on one table (created on first use)."""
        entry = self._staged.get(id(table))
        if entry is None:
            entry = self._staged[id(table)] = (table, {})
        return entry[1]

    def peek(self, table: "_InMemoryTable") -> Dict[Hashable, Any]:
        entry = self._staged.get(id(table))
        return entry[1] if entry is not None else {}

    def commit(self):
        tables = [table for table, _ in self._staged.values()]
        mutexes = {id(t.mutex): t.mutex for t in tables}
        # All tables flip together for readers
        with ExitStack() as stack:
            for key in sorted(mutexes):
                stack.enter_context(mutexes[key])
            for table, changes in self._staged.values():
                table.apply(changes)
        self._staged.clear()

    def rollback(self):
        self._staged.clear()

    def release(self):
        while self._held:
            self._transactor.release(self._held.pop())
        self._staged.clear()


class InMemoryTransactor(Transactor):

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[LockKey, _LockEntry] = {}
        self._registry_lock = threading.Lock()

    def acquire(self, key: LockKey) -> bool:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _LockEntry()
            entry.users += 1
        if entry.lock.acquire(timeout=self.timeout_seconds):
            return True
        self._forget(key)
        return False

    def release(self, key: LockKey):
        with self._registry_lock:
            entry = self._locks[key]
        entry.lock.release()
        self._forget(key)

    def _forget(self, key: LockKey):
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def begin(self) -> Iterator[InMemoryTransaction]:
        tx = InMemoryTransaction(self)
        try:
            yield tx
            tx.commit()
        except Exception:
            tx.rollback()
            raise
        finally:
            tx.release()


# ==========================================
# STORES
# ==========================================

class _InMemoryTable:
    """Committed rows plus the read/write plumbing shared by both stores."""

    def __init__(self, mutex: Optional[threading.RLock] = None):
        self.mutex = mutex or threading.RLock()
        self._rows: Dict[Hashable, Any] = {}

    def view(self, tx: Optional[Transaction]) -> Dict[Hashable, Any]:
        """Committed rows, overlaid with tx's staged writes."""
        with self.mutex:
            rows = dict(self._rows)
        if isinstance(tx, InMemoryTransaction):
            for key, value in tx.peek(self).items():
                if value is _DELETED:
                    rows.pop(key, None)
                else:
                    rows[key] = value
        return rows

    def write(self, key: Hashable, value: Any, tx: Optional[Transaction]):
        if isinstance(tx, InMemoryTransaction):
            tx.staged(self)[key] = value
        else:
            self.apply({key: value})

    def apply(self, changes: Dict[Hashable, Any]):
        with self.mutex:
            for key, value in changes.items():
                if value is _DELETED:
                    self._rows.pop(key, None)
                else:
                    self._rows[key] = value


class InMemoryReservationStore(_InMemoryTable, ReservationStore):

    def _on_resource(self, tenant_id: str, resource_id: str, tx) -> List[ReservationDTO]:
        return [
            r for r in self.view(tx).values()
            if r.tenant_id == tenant_id and r.resource_id == resource_id
        ]

    def find_conflicting(self, tenant_id, resource_id, start, end, tx=None):
        for r in self._on_resource(tenant_id, resource_id, tx):
            if overlaps(r.start_date, r.end_date, start, end):
                return r
        return None

    def create(self, tenant_id, resource_id, client_id, start, end, tx=None):
        reservation = ReservationDTO(
            id=new_object_id(),
            tenant_id=tenant_id,
            resource_id=resource_id,
            client_id=client_id,
            start_date=start,
            end_date=end,
            created_at=datetime.now(timezone.utc),
        )
        self.write(reservation.id, reservation, tx)
        return reservation

    def find_by_id(self, tenant_id, reservation_id, tx=None):
        r = self.view(tx).get(reservation_id)
        return r if r is not None and r.tenant_id == tenant_id else None

    def delete(self, tenant_id, reservation_id, tx=None):
        if self.find_by_id(tenant_id, reservation_id, tx) is None:
            return False
        self.write(reservation_id, _DELETED, tx)
        return True

    def find_other_active_on_resource(self, tenant_id, resource_id, excluding_reservation_id,
                                      reference_date, tx=None):
        for r in self._on_resource(tenant_id, resource_id, tx):
            if r.id != excluding_reservation_id and is_active_on(r.start_date, r.end_date, reference_date):
                return r
        return None

    def list_by_resource(self, tenant_id, resource_id, tx=None):
        rows = sorted(
            self._on_resource(tenant_id, resource_id, tx),
            key=lambda r: (r.start_date, r.created_at, r.id),
            reverse=True,
        )
        return iter(rows)

    def find_overlapping_resource_ids(self, tenant_id, start, end, tx=None):
        return {
            r.resource_id for r in self.view(tx).values()
            if r.tenant_id == tenant_id and overlaps(r.start_date, r.end_date, start, end)
        }

    def client_has_reservations_ending_on_or_after(self, tenant_id, client_id, reference_date, tx=None):
        return any(
            r.tenant_id == tenant_id and r.client_id == client_id and r.end_date >= reference_date
            for r in self.view(tx).values()
        )


class InMemoryResourceStore(_InMemoryTable, ResourceAvailabilityStore):

    def __init__(self, reservations: InMemoryReservationStore):
        # One mutex for both tables so a commit is seen all at once
        super().__init__(mutex=reservations.mutex)
        self._reservations = reservations

    def _replace(self, tenant_id: str, resource_id: str, state: ResourceState,
                 tx: Optional[Transaction]) -> bool:
        current = self.get(tenant_id, resource_id, tx)
        if current is None:
            return False
        updated = current.model_copy(
            update={"state": state, "available": state == ResourceState.AVAILABLE}
        )
        self.write((tenant_id, resource_id), updated, tx)
        return True

    def set_available(self, tenant_id, resource_id, available, tx=None):
        current = self.get(tenant_id, resource_id, tx)
        if current is None:
            return False
        if current.state == ResourceState.MAINTENANCE:
            return True
        target = ResourceState.AVAILABLE if available else ResourceState.BOOKED
        return self._replace(tenant_id, resource_id, target, tx)

    def set_state(self, tenant_id, resource_id, state, tx=None):
        return self._replace(tenant_id, resource_id, state, tx)

    def is_currently_booked(self, tenant_id, resource_id, reference_date, tx=None):
        active = self._reservations.find_other_active_on_resource(
            tenant_id, resource_id, None, reference_date, tx=tx
        )
        return active is not None

    def get(self, tenant_id, resource_id, tx=None):
        return self.view(tx).get((tenant_id, resource_id))

    def add(self, tenant_id, label="", tx=None):
        resource = ResourceDTO(id=new_object_id(), tenant_id=tenant_id, label=label)
        self.write((tenant_id, resource.id), resource, tx)
        return resource

    def list_resources(self, tenant_id=None, tx=None):
        rows = [r for r in self.view(tx).values() if tenant_id is None or r.tenant_id == tenant_id]
        return sorted(rows, key=lambda r: (r.label, r.id))
