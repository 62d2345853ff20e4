"""
Billboard Rental API - Dependency Injection
===========================================

Provides the coordinator and the caller's tenant to endpoints.
Authentication happens upstream; by the time a request reaches this
service the gateway has resolved the tenant into the X-Tenant-Id header.
"""

from fastapi import Header, HTTPException, Request, status

from services import BookingCoordinator


def get_coordinator(request: Request) -> BookingCoordinator:
    """
    The coordinator built at startup (or injected by create_app).

    Usage:
        @router.post("")
        def create(coordinator: BookingCoordinator = Depends(get_coordinator)):
            ...
    """
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized"
        )
    return coordinator


def get_tenant_id(x_tenant_id: str = Header(..., min_length=1, description="Tenant resolved by the gateway")) -> str:
    return x_tenant_id.strip()
