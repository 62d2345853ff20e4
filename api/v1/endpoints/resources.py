"""
Billboard Rental API - Resource Endpoints
=========================================

Availability state, maintenance toggle and free-resource search.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from api.deps import get_coordinator, get_tenant_id
from schemas import ReservationDTO, ResourceCreate, ResourceDTO
from services import BookingCoordinator

router = APIRouter()


@router.post(
    "",
    response_model=ResourceDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register Resource",
    description="Register a resource; it starts AVAILABLE."
)
def register_resource(
    data: ResourceCreate,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.register_resource(tenant_id, data.label)


@router.get(
    "/available",
    response_model=List[ResourceDTO],
    summary="Find Available Resources",
    description="Resources outside maintenance with no reservation on any day of the range."
)
def find_available_resources(
    start: str = Query(..., description="First day, ISO-8601"),
    end: str = Query(..., description="Last day (inclusive), ISO-8601"),
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.find_available_resources(tenant_id, start, end)


@router.get(
    "/{resource_id}",
    response_model=ResourceDTO,
    summary="Get Resource"
)
def get_resource(
    resource_id: str,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.get_resource(tenant_id, resource_id)


@router.get(
    "/{resource_id}/reservations",
    response_model=List[ReservationDTO],
    summary="List Reservations For Resource",
    description="Latest start date first."
)
def list_reservations_for_resource(
    resource_id: str,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.list_reservations_for_resource(tenant_id, resource_id)


@router.post(
    "/{resource_id}/maintenance",
    response_model=ResourceDTO,
    summary="Toggle Maintenance",
    description="Enter or leave maintenance. 409 while a reservation is active today."
)
def toggle_maintenance(
    resource_id: str,
    tenant_id: str = Depends(get_tenant_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.toggle_maintenance(tenant_id, resource_id)
