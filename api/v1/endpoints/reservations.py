"""
Billboard Rental API - Reservation Endpoints
============================================

Dates arrive as ISO-8601 strings; the coordinator normalizes them.
"""

from fastapi import APIRouter, Depends, status

from api.deps import get_coordinator, get_tenant_id
from schemas import ReservationCreate, ReservationDTO
from services import BookingCoordinator

router = APIRouter()


@router.post(
    "",
    response_model=ReservationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create Reservation",
    description="Book a resource for a closed date range. 409 if any day is already taken."
)
def create_reservation(
    data: ReservationCreate,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.create_reservation(
        tenant_id, data.resource_id, data.client_id, data.start_date, data.end_date
    )


@router.get(
    "/{reservation_id}",
    response_model=ReservationDTO,
    summary="Get Reservation"
)
def get_reservation(
    reservation_id: str,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.get_reservation(tenant_id, reservation_id)


@router.delete(
    "/{reservation_id}",
    summary="Cancel Reservation",
    description="Delete a reservation and release the resource if nothing else occupies it today."
)
def cancel_reservation(
    reservation_id: str,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    coordinator.cancel_reservation(tenant_id, reservation_id)
    return {"status": "success", "message": "Reservation cancelled", "id": reservation_id}
