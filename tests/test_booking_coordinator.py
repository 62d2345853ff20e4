import itertools
import logging

import pytest

from availability import overlaps
from database import ResourceState
from exceptions import ConflictError, NotFoundError, ValidationError
from logging_config import ROOT_LOGGER_NAME
from conftest import CLIENT, OTHER_TENANT, TENANT, TODAY


def assert_no_overlaps(reservations):
    for a, b in itertools.combinations(reservations, 2):
        assert not overlaps(a.start_date, a.end_date, b.start_date, b.end_date), (a, b)


class TestCreateReservation:
    def test_overlapping_reservation_is_rejected(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        with pytest.raises(ConflictError) as exc:
            coordinator.create_reservation(TENANT, resource.id, "client-2", "2025-01-15", "2025-01-25")

        assert exc.value.message == "overlapping reservation"
        assert len(coordinator.list_reservations_for_resource(TENANT, resource.id)) == 1

    def test_adjacent_reservations_succeed(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-15")
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-16", "2025-01-20")

        assert len(coordinator.list_reservations_for_resource(TENANT, resource.id)) == 2

    def test_same_day_handoff_is_rejected(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-02-01", "2025-02-10")

        with pytest.raises(ConflictError):
            coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-02-10", "2025-02-12")

    def test_dates_are_normalized_to_utc_days(self, coordinator, resource):
        created = coordinator.create_reservation(
            TENANT, resource.id, CLIENT, "2025-03-01T15:30:00Z", "2025-03-05T23:30:00-03:00"
        )

        assert created.start_date.isoformat() == "2025-03-01"
        assert created.end_date.isoformat() == "2025-03-06"
        assert created.tenant_id == TENANT
        assert created.client_id == CLIENT
        assert len(created.id) == 24

    def test_start_after_end_is_a_validation_error(self, coordinator, resource):
        with pytest.raises(ValidationError):
            coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-20", "2025-01-10")

        assert coordinator.list_reservations_for_resource(TENANT, resource.id) == []

    @pytest.mark.parametrize("field", ["tenant_id", "resource_id", "client_id"])
    def test_blank_ids_are_rejected(self, coordinator, resource, field):
        args = {"tenant_id": TENANT, "resource_id": resource.id, "client_id": CLIENT}
        args[field] = "  "
        with pytest.raises(ValidationError):
            coordinator.create_reservation(
                args["tenant_id"], args["resource_id"], args["client_id"], "2025-01-10", "2025-01-11"
            )

    def test_future_reservation_leaves_resource_available(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-06-01", "2025-06-30")

        current = coordinator.get_resource(TENANT, resource.id)
        assert current.available is True
        assert current.state == ResourceState.AVAILABLE

    def test_other_tenants_reservations_do_not_conflict(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        # Same resource id under another tenant is a different resource
        coordinator.create_reservation(OTHER_TENANT, resource.id, CLIENT, "2025-03-10", "2025-03-20")

        assert len(coordinator.list_reservations_for_resource(TENANT, resource.id)) == 1
        assert len(coordinator.list_reservations_for_resource(OTHER_TENANT, resource.id)) == 1


class TestAvailabilityDerivation:
    def test_create_and_cancel_flip_the_flag(self, coordinator, resource):
        assert coordinator.get_resource(TENANT, resource.id).available is True

        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")
        booked = coordinator.get_resource(TENANT, resource.id)
        assert booked.available is False
        assert booked.state == ResourceState.BOOKED

        coordinator.cancel_reservation(TENANT, created.id)
        released = coordinator.get_resource(TENANT, resource.id)
        assert released.available is True
        assert released.state == ResourceState.AVAILABLE

    def test_reservation_starting_or_ending_today_is_active(self, coordinator):
        first = coordinator.register_resource(TENANT, "PL-A")
        second = coordinator.register_resource(TENANT, "PL-B")

        coordinator.create_reservation(TENANT, first.id, CLIENT, TODAY, "2025-01-31")
        coordinator.create_reservation(TENANT, second.id, CLIENT, "2025-01-01", TODAY)

        assert coordinator.get_resource(TENANT, first.id).available is False
        assert coordinator.get_resource(TENANT, second.id).available is False

    def test_cancel_keeps_resource_booked_while_another_reservation_is_active(self, coordinator, resource):
        # Legacy data can hold overlapping rows; insert the second one past the coordinator
        first = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-15")
        second = coordinator.reservations.create(TENANT, resource.id, CLIENT, TODAY, TODAY)

        coordinator.cancel_reservation(TENANT, first.id)
        assert coordinator.get_resource(TENANT, resource.id).available is False

        coordinator.cancel_reservation(TENANT, second.id)
        assert coordinator.get_resource(TENANT, resource.id).available is True

    def test_cancelling_a_past_reservation_does_not_touch_the_flag(self, coordinator, resource):
        past = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2024-12-01", "2024-12-31")
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        coordinator.cancel_reservation(TENANT, past.id)

        assert coordinator.get_resource(TENANT, resource.id).available is False

    def test_active_reservation_on_missing_resource_rolls_back(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.create_reservation(TENANT, "f" * 24, CLIENT, "2025-01-10", "2025-01-20")

        assert coordinator.list_reservations_for_resource(TENANT, "f" * 24) == []

    def test_active_reservation_on_other_tenants_resource_is_not_found(self, coordinator, resource):
        with pytest.raises(NotFoundError):
            coordinator.create_reservation(OTHER_TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        assert coordinator.get_resource(TENANT, resource.id).available is True
        assert coordinator.list_reservations_for_resource(OTHER_TENANT, resource.id) == []

    def test_flag_write_failure_rolls_back_the_insert(self, coordinator, resource, monkeypatch):
        def broken_write(*args, **kwargs):
            raise RuntimeError("datastore went away")

        monkeypatch.setattr(coordinator.resources, "set_available", broken_write)

        with pytest.raises(RuntimeError):
            coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        assert coordinator.list_reservations_for_resource(TENANT, resource.id) == []


class TestCancelReservation:
    def test_unknown_reservation_is_not_found_and_changes_nothing(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        with pytest.raises(NotFoundError):
            coordinator.cancel_reservation(TENANT, "0" * 24)

        assert coordinator.get_resource(TENANT, resource.id).available is False
        assert len(coordinator.list_reservations_for_resource(TENANT, resource.id)) == 1

    def test_cannot_cancel_another_tenants_reservation(self, coordinator, resource):
        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        with pytest.raises(NotFoundError):
            coordinator.cancel_reservation(OTHER_TENANT, created.id)

        assert coordinator.get_reservation(TENANT, created.id).id == created.id

    def test_second_cancel_is_not_found(self, coordinator, resource):
        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-02-01", "2025-02-05")
        coordinator.cancel_reservation(TENANT, created.id)

        with pytest.raises(NotFoundError):
            coordinator.cancel_reservation(TENANT, created.id)

    def test_cancelled_range_can_be_booked_again(self, coordinator, resource):
        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-02-01", "2025-02-05")
        coordinator.cancel_reservation(TENANT, created.id)

        coordinator.create_reservation(TENANT, resource.id, "client-2", "2025-02-03", "2025-02-04")


class TestToggleMaintenance:
    def test_free_resource_enters_and_leaves_maintenance(self, coordinator, resource):
        entered = coordinator.toggle_maintenance(TENANT, resource.id)
        assert entered.state == ResourceState.MAINTENANCE
        assert entered.available is False

        left = coordinator.toggle_maintenance(TENANT, resource.id)
        assert left.state == ResourceState.AVAILABLE
        assert left.available is True

    def test_booked_resource_cannot_enter_maintenance(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        with pytest.raises(ConflictError):
            coordinator.toggle_maintenance(TENANT, resource.id)

        assert coordinator.get_resource(TENANT, resource.id).state == ResourceState.BOOKED

    def test_future_reservation_does_not_block_maintenance(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-03-01", "2025-03-10")

        assert coordinator.toggle_maintenance(TENANT, resource.id).state == ResourceState.MAINTENANCE

    def test_unknown_resource_is_not_found(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.toggle_maintenance(TENANT, "a" * 24)

    def test_other_tenant_cannot_toggle(self, coordinator, resource):
        with pytest.raises(NotFoundError):
            coordinator.toggle_maintenance(OTHER_TENANT, resource.id)

        assert coordinator.get_resource(TENANT, resource.id).state == ResourceState.AVAILABLE

    def test_maintenance_survives_booking_and_cancellation(self, coordinator, resource):
        coordinator.toggle_maintenance(TENANT, resource.id)

        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-14", "2025-01-16")
        assert coordinator.get_resource(TENANT, resource.id).state == ResourceState.MAINTENANCE

        coordinator.cancel_reservation(TENANT, created.id)
        assert coordinator.get_resource(TENANT, resource.id).state == ResourceState.MAINTENANCE

    def test_leaving_maintenance_while_booked_lands_on_booked(self, coordinator, resource):
        coordinator.toggle_maintenance(TENANT, resource.id)
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-14", "2025-01-16")

        left = coordinator.toggle_maintenance(TENANT, resource.id)

        assert left.state == ResourceState.BOOKED
        assert left.available is False


class TestReads:
    def test_list_is_latest_start_first_and_repeatable(self, coordinator, resource):
        for start, end in [("2025-01-01", "2025-01-05"), ("2025-03-01", "2025-03-05"), ("2025-02-01", "2025-02-05")]:
            coordinator.create_reservation(TENANT, resource.id, CLIENT, start, end)

        first = coordinator.list_reservations_for_resource(TENANT, resource.id)
        second = coordinator.list_reservations_for_resource(TENANT, resource.id)

        assert [r.start_date.isoformat() for r in first] == ["2025-03-01", "2025-02-01", "2025-01-01"]
        assert first == second

    def test_list_unknown_resource_is_empty(self, coordinator):
        assert coordinator.list_reservations_for_resource(TENANT, "nothing-here") == []

    def test_get_reservation(self, coordinator, resource):
        created = coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-02-01", "2025-02-05")

        assert coordinator.get_reservation(TENANT, created.id).id == created.id
        with pytest.raises(NotFoundError):
            coordinator.get_reservation(OTHER_TENANT, created.id)

    def test_get_unknown_resource(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.get_resource(TENANT, "missing")

    def test_find_available_resources(self, coordinator):
        free = coordinator.register_resource(TENANT, "A-free")
        taken = coordinator.register_resource(TENANT, "B-taken")
        edge = coordinator.register_resource(TENANT, "C-edge")
        repair = coordinator.register_resource(TENANT, "D-repair")
        coordinator.register_resource(OTHER_TENANT, "foreign")

        coordinator.create_reservation(TENANT, taken.id, CLIENT, "2025-02-05", "2025-02-08")
        coordinator.create_reservation(TENANT, edge.id, CLIENT, "2025-01-25", "2025-02-01")
        coordinator.toggle_maintenance(TENANT, repair.id)

        result = coordinator.find_available_resources(TENANT, "2025-02-01", "2025-02-10")

        assert [r.id for r in result] == [free.id]

    def test_find_available_resources_validates_range(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.find_available_resources(TENANT, "2025-02-10", "2025-02-01")

    def test_client_reservation_check(self, coordinator, resource):
        assert not coordinator.client_has_current_or_future_reservations(TENANT, CLIENT)

        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-01", TODAY)
        assert coordinator.client_has_current_or_future_reservations(TENANT, CLIENT)
        assert not coordinator.client_has_current_or_future_reservations(TENANT, CLIENT, "2025-01-16")
        assert not coordinator.client_has_current_or_future_reservations(OTHER_TENANT, CLIENT)


class TestReconcileAvailability:
    def test_sweep_follows_the_calendar(self, coordinator):
        starts_tomorrow = coordinator.register_resource(TENANT, "A")
        ends_today = coordinator.register_resource(TENANT, "B")
        repair = coordinator.register_resource(TENANT, "C")

        coordinator.create_reservation(TENANT, starts_tomorrow.id, CLIENT, "2025-01-16", "2025-01-20")
        coordinator.create_reservation(TENANT, ends_today.id, CLIENT, "2025-01-10", TODAY)
        coordinator.toggle_maintenance(TENANT, repair.id)
        coordinator.create_reservation(TENANT, repair.id, CLIENT, "2025-01-16", "2025-01-17")

        report = coordinator.reconcile_availability(TENANT, "2025-01-16")

        assert report.checked == 3
        assert report.marked_booked == 1
        assert report.marked_available == 1
        assert report.skipped_maintenance == 1
        assert coordinator.get_resource(TENANT, starts_tomorrow.id).state == ResourceState.BOOKED
        assert coordinator.get_resource(TENANT, ends_today.id).state == ResourceState.AVAILABLE
        assert coordinator.get_resource(TENANT, repair.id).state == ResourceState.MAINTENANCE

    def test_sweep_is_idempotent(self, coordinator, resource):
        coordinator.create_reservation(TENANT, resource.id, CLIENT, "2025-01-10", "2025-01-20")

        report = coordinator.reconcile_availability()

        assert report.reference_date == TODAY
        assert report.marked_booked == 0
        assert report.marked_available == 0

    def test_failing_resource_is_reported_and_the_sweep_goes_on(self, coordinator, monkeypatch, caplog):
        good = coordinator.register_resource(TENANT, "A")
        bad = coordinator.register_resource(TENANT, "B")
        coordinator.create_reservation(TENANT, good.id, CLIENT, "2025-01-16", "2025-01-20")
        coordinator.create_reservation(TENANT, bad.id, CLIENT, "2025-01-16", "2025-01-20")
        write_state = coordinator.resources.set_state

        def flaky_write(tenant_id, resource_id, state, tx=None):
            if resource_id == bad.id:
                raise ConflictError("resource busy, retry the request", retryable=True)
            return write_state(tenant_id, resource_id, state, tx=tx)

        monkeypatch.setattr(coordinator.resources, "set_state", flaky_write)

        with caplog.at_level(logging.WARNING, logger=ROOT_LOGGER_NAME):
            report = coordinator.reconcile_availability(TENANT, "2025-01-16")

        assert report.failed == [bad.id]
        assert report.checked == 1
        assert report.marked_booked == 1
        assert coordinator.get_resource(TENANT, good.id).state == ResourceState.BOOKED
        assert coordinator.get_resource(TENANT, bad.id).state == ResourceState.AVAILABLE
        assert any(bad.id in r.getMessage() for r in caplog.records)

    def test_bad_reference_date_is_rejected_and_logged(self, coordinator, caplog):
        with caplog.at_level(logging.WARNING, logger=ROOT_LOGGER_NAME):
            with pytest.raises(ValidationError):
                coordinator.reconcile_availability(TENANT, "yesterday")

        assert any("reconcile_availability rejected" in r.getMessage() for r in caplog.records)

    def test_sweep_can_be_limited_to_a_tenant(self, coordinator):
        coordinator.register_resource(TENANT, "A")
        coordinator.register_resource(OTHER_TENANT, "B")

        assert coordinator.reconcile_availability(TENANT).checked == 1
        assert coordinator.reconcile_availability().checked == 2


class TestNoOverlapInvariant:
    def test_random_sequence_never_produces_overlaps(self, coordinator, resource):
        ranges = [
            ("2025-01-01", "2025-01-10"), ("2025-01-05", "2025-01-12"), ("2025-01-10", "2025-01-11"),
            ("2025-01-11", "2025-01-20"), ("2025-01-21", "2025-01-21"), ("2025-01-21", "2025-01-25"),
            ("2024-12-25", "2025-01-02"), ("2025-01-26", "2025-02-05"), ("2025-02-01", "2025-02-01"),
        ]
        for start, end in ranges:
            try:
                coordinator.create_reservation(TENANT, resource.id, CLIENT, start, end)
            except ConflictError:
                pass

        stored = coordinator.list_reservations_for_resource(TENANT, resource.id)
        assert len(stored) == 4
        assert_no_overlaps(stored)
