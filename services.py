"""
Billboard Rental Core - Booking Coordinator
===========================================

Keeps the reservation set and each resource's availability state consistent:

- No two reservations on the same (tenant, resource) share a day
- A resource is BOOKED iff a reservation is active today, unless an operator
  put it in MAINTENANCE (manual override, never entered while booked)

Every mutating operation runs in one transaction holding the resource lock,
so the conflict check, the insert/delete and the state write commit or abort
together.

Usage:
    coordinator = build_coordinator(Settings.from_env())
    coordinator.create_reservation(tenant_id, resource_id, client_id,
                                   "2025-01-10", "2025-01-20")
"""

from datetime import date
from typing import Callable, List, Optional

from availability import DateInput, is_active_on, normalize_date, normalize_range, today_utc
from database import ResourceState, create_db_engine, init_db, make_session_factory
from exceptions import BookingError, ConflictError, InternalError, NotFoundError, ValidationError
from logging_config import get_logger
from memory_stores import InMemoryReservationStore, InMemoryResourceStore, InMemoryTransactor
from schemas import ReconcileReport, ReservationDTO, ResourceDTO
from settings import Settings
from stores import (
    ReservationStore, ResourceAvailabilityStore, SqlReservationStore, SqlResourceStore
)
from transactions import SqlAlchemyTransactor, Transactor

logger = get_logger(__name__)


def _require(value: str, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


def _log_failure(operation: str, error: BookingError):
    # Datastore failures were already logged at ERROR by the transactor that translated them
    if isinstance(error, InternalError):
        logger.debug(f"{operation} aborted: {error.code}")
        return
    logger.warning(f"{operation} rejected: {error.code} - {error.message}")


class BookingCoordinator:
    """Reservation and availability operations for all tenants."""

    def __init__(
        self,
        reservations: ReservationStore,
        resources: ResourceAvailabilityStore,
        transactor: Transactor,
        today: Callable[[], date] = today_utc,
    ):
        self.reservations = reservations
        self.resources = resources
        self.transactor = transactor
        self.today = today

    # ==========================================
    # RESERVATIONS
    # ==========================================

    def create_reservation(
        self,
        tenant_id: str,
        resource_id: str,
        client_id: str,
        start_date: DateInput,
        end_date: DateInput,
    ) -> ReservationDTO:
        """
        Books [start_date, end_date] (both days included) on a resource.

        Raises:
            ValidationError: missing ids, unparsable dates, start after end
            ConflictError: the range shares a day with an existing reservation
            NotFoundError: the reservation is active today but the resource does not exist
        """
        try:
            tenant_id = _require(tenant_id, "tenant_id")
            resource_id = _require(resource_id, "resource_id")
            client_id = _require(client_id, "client_id")
            start, end = normalize_range(start_date, end_date)

            logger.info(f"Creating reservation on resource {resource_id} ({start} -> {end}) for tenant {tenant_id}")

            with self.transactor.begin() as tx:
                tx.lock_resource(tenant_id, resource_id)

                conflict = self.reservations.find_conflicting(tenant_id, resource_id, start, end, tx=tx)
                if conflict is not None:
                    logger.debug(f"Range overlaps reservation {conflict.id} ({conflict.start_date} -> {conflict.end_date})")
                    raise ConflictError("overlapping reservation")

                created = self.reservations.create(tenant_id, resource_id, client_id, start, end, tx=tx)

                if is_active_on(start, end, self.today()):
                    logger.debug(f"Reservation {created.id} is active today, marking resource {resource_id} booked")
                    if not self.resources.set_available(tenant_id, resource_id, False, tx=tx):
                        raise NotFoundError("resource", resource_id)
        except BookingError as e:
            _log_failure("create_reservation", e)
            raise

        logger.info(f"Reservation {created.id} created")
        return created

    def cancel_reservation(self, tenant_id: str, reservation_id: str) -> None:
        """
        Deletes a reservation. If it was active today and nothing else occupies
        the resource today, the resource becomes available again.

        Raises:
            NotFoundError: no such reservation within the tenant
        """
        try:
            tenant_id = _require(tenant_id, "tenant_id")
            reservation_id = _require(reservation_id, "reservation_id")
            logger.info(f"Cancelling reservation {reservation_id} for tenant {tenant_id}")

            with self.transactor.begin() as tx:
                reservation = self.reservations.find_by_id(tenant_id, reservation_id, tx=tx)
                if reservation is None:
                    raise NotFoundError("reservation", reservation_id)

                tx.lock_resource(tenant_id, reservation.resource_id)

                # A concurrent cancel may have won between the read and the lock
                if not self.reservations.delete(tenant_id, reservation_id, tx=tx):
                    raise NotFoundError("reservation", reservation_id)

                today = self.today()
                if is_active_on(reservation.start_date, reservation.end_date, today):
                    other = self.reservations.find_other_active_on_resource(
                        tenant_id, reservation.resource_id, reservation_id, today, tx=tx
                    )
                    if other is None:
                        logger.debug(f"No other active reservation, releasing resource {reservation.resource_id}")
                        self.resources.set_available(tenant_id, reservation.resource_id, True, tx=tx)
                    else:
                        logger.debug(f"Reservation {other.id} still occupies resource {reservation.resource_id}")
        except BookingError as e:
            _log_failure("cancel_reservation", e)
            raise

        logger.info(f"Reservation {reservation_id} cancelled")

    def get_reservation(self, tenant_id: str, reservation_id: str) -> ReservationDTO:
        reservation = self.reservations.find_by_id(
            _require(tenant_id, "tenant_id"), _require(reservation_id, "reservation_id")
        )
        if reservation is None:
            raise NotFoundError("reservation", reservation_id)
        return reservation

    def list_reservations_for_resource(self, tenant_id: str, resource_id: str) -> List[ReservationDTO]:
        """All reservations of a resource, latest start date first."""
        rows = self.reservations.list_by_resource(
            _require(tenant_id, "tenant_id"), _require(resource_id, "resource_id")
        )
        result = list(rows)
        logger.info(f"list_reservations_for_resource: {len(result)} reservations for resource {resource_id}")
        return result

    def client_has_current_or_future_reservations(
        self, tenant_id: str, client_id: str, reference_date: Optional[DateInput] = None
    ) -> bool:
        """True when the client holds a reservation ending today or later."""
        day = normalize_date(reference_date) if reference_date is not None else self.today()
        return self.reservations.client_has_reservations_ending_on_or_after(
            _require(tenant_id, "tenant_id"), _require(client_id, "client_id"), day
        )

    # ==========================================
    # RESOURCES
    # ==========================================

    def register_resource(self, tenant_id: str, label: str = "") -> ResourceDTO:
        resource = self.resources.add(_require(tenant_id, "tenant_id"), label)
        logger.info(f"Resource {resource.id} registered for tenant {tenant_id}")
        return resource

    def get_resource(self, tenant_id: str, resource_id: str) -> ResourceDTO:
        resource = self.resources.get(_require(tenant_id, "tenant_id"), _require(resource_id, "resource_id"))
        if resource is None:
            raise NotFoundError("resource", resource_id)
        return resource

    def toggle_maintenance(self, tenant_id: str, resource_id: str) -> ResourceDTO:
        """
        Puts a resource into MAINTENANCE, or takes it out.

        Leaving maintenance lands on BOOKED when a reservation is active today,
        otherwise on AVAILABLE.

        Raises:
            NotFoundError: no such resource within the tenant
            ConflictError: entering maintenance while a reservation is active today
        """
        try:
            tenant_id = _require(tenant_id, "tenant_id")
            resource_id = _require(resource_id, "resource_id")

            with self.transactor.begin() as tx:
                tx.lock_resource(tenant_id, resource_id)

                resource = self.resources.get(tenant_id, resource_id, tx=tx)
                if resource is None:
                    raise NotFoundError("resource", resource_id)

                booked = self.resources.is_currently_booked(tenant_id, resource_id, self.today(), tx=tx)

                if resource.state != ResourceState.MAINTENANCE:
                    if booked:
                        raise ConflictError("resource currently booked")
                    new_state = ResourceState.MAINTENANCE
                else:
                    new_state = ResourceState.BOOKED if booked else ResourceState.AVAILABLE

                self.resources.set_state(tenant_id, resource_id, new_state, tx=tx)
                updated = self.resources.get(tenant_id, resource_id, tx=tx)
        except BookingError as e:
            _log_failure("toggle_maintenance", e)
            raise

        logger.info(f"Resource {resource_id} moved {resource.state.value} -> {updated.state.value}")
        return updated

    def find_available_resources(self, tenant_id: str, start_date: DateInput, end_date: DateInput) -> List[ResourceDTO]:
        """Resources not in maintenance and free on every day of [start_date, end_date]."""
        tenant_id = _require(tenant_id, "tenant_id")
        start, end = normalize_range(start_date, end_date)

        busy = self.reservations.find_overlapping_resource_ids(tenant_id, start, end)
        logger.debug(f"{len(busy)} resources occupied between {start} and {end}")

        result = [
            r for r in self.resources.list_resources(tenant_id)
            if not r.in_maintenance and r.id not in busy
        ]
        logger.info(f"find_available_resources: {len(result)} free between {start} and {end}")
        return result

    # ==========================================
    # RECONCILIATION
    # ==========================================

    def reconcile_availability(
        self, tenant_id: Optional[str] = None, reference_date: Optional[DateInput] = None
    ) -> ReconcileReport:
        """
        Recomputes BOOKED/AVAILABLE from the reservations active on reference_date.

        Run once a day after midnight UTC: reservations starting or ending at the
        day boundary change availability without any request touching them.
        Each resource is reconciled in its own locked transaction; a resource
        that fails is rolled back, listed in report.failed, and the sweep goes on.

        Raises:
            ValidationError: unparsable reference_date
            InternalError: the resource list could not be read
        """
        try:
            day = normalize_date(reference_date) if reference_date is not None else self.today()
            report = ReconcileReport(reference_date=day)

            for resource in self.resources.list_resources(tenant_id):
                try:
                    outcome = self._reconcile_resource(resource.tenant_id, resource.id, day)
                except BookingError as e:
                    _log_failure(f"reconcile_availability[{resource.id}]", e)
                    report.failed.append(resource.id)
                    continue

                if outcome is None:
                    continue
                report.checked += 1
                if outcome == "maintenance":
                    report.skipped_maintenance += 1
                elif outcome == ResourceState.BOOKED:
                    report.marked_booked += 1
                elif outcome == ResourceState.AVAILABLE:
                    report.marked_available += 1
        except BookingError as e:
            _log_failure("reconcile_availability", e)
            raise

        logger.info(
            f"reconcile_availability {day}: {report.checked} checked, "
            f"{report.marked_booked} booked, {report.marked_available} released, "
            f"{len(report.failed)} failed"
        )
        return report

    def _reconcile_resource(self, tenant_id: str, resource_id: str, day: date):
        """
        Returns the state written, "maintenance", "unchanged", or None when the
        resource disappeared.
        """
        with self.transactor.begin() as tx:
            tx.lock_resource(tenant_id, resource_id)
            current = self.resources.get(tenant_id, resource_id, tx=tx)
            if current is None:
                return None
            if current.in_maintenance:
                return "maintenance"

            booked = self.resources.is_currently_booked(tenant_id, resource_id, day, tx=tx)
            target = ResourceState.BOOKED if booked else ResourceState.AVAILABLE
            if current.state == target:
                return "unchanged"

            self.resources.set_state(tenant_id, resource_id, target, tx=tx)
            logger.debug(f"Resource {resource_id}: {current.state.value} -> {target.value}")
            return target


# ==========================================
# CONSTRUCTION
# ==========================================

def build_coordinator(settings: Settings, today: Callable[[], date] = today_utc) -> BookingCoordinator:
    """Wires stores and transactor for the configured backend."""
    if settings.booking_backend == "memory":
        logger.warning("Using the in-memory booking backend; data is lost on restart")
        reservations = InMemoryReservationStore()
        return BookingCoordinator(
            reservations,
            InMemoryResourceStore(reservations),
            InMemoryTransactor(settings.transaction_timeout_seconds),
            today=today,
        )

    engine = create_db_engine(settings.database_url, settings.transaction_timeout_seconds)
    init_db(engine)
    transactor = SqlAlchemyTransactor(make_session_factory(engine), settings.transaction_timeout_seconds)
    return BookingCoordinator(
        SqlReservationStore(transactor),
        SqlResourceStore(transactor),
        transactor,
        today=today,
    )
