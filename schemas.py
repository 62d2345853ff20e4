"""
Billboard Rental Core - Validation Schemas (Pydantic)
=====================================================

Data Transfer Objects crossing the store and HTTP boundaries.

- Stores return ReservationDTO / ResourceDTO (immutable snapshots, never ORM rows)
- The HTTP layer accepts ReservationCreate / ResourceCreate
- Dates cross the HTTP boundary as ISO-8601 strings and are normalized
  to UTC calendar dates on entry
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database import ResourceState


# ==========================================
# DOMAIN SNAPSHOTS
# ==========================================

class ReservationDTO(BaseModel):
    """A reservation as stored. Immutable; dates are UTC calendar days."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    tenant_id: str
    resource_id: str
    client_id: str
    start_date: date
    end_date: date
    created_at: Optional[datetime] = None


class ResourceDTO(BaseModel):
    """A rentable resource and its availability state."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    tenant_id: str
    label: str = ""
    state: ResourceState = ResourceState.AVAILABLE
    available: bool = True

    @property
    def in_maintenance(self) -> bool:
        return self.state == ResourceState.MAINTENANCE


class ReconcileReport(BaseModel):
    """Outcome of an availability reconciliation sweep."""
    reference_date: date
    checked: int = 0
    marked_booked: int = 0
    marked_available: int = 0
    skipped_maintenance: int = 0
    failed: List[str] = Field(default_factory=list, description="Resource ids rolled back during the sweep")


# ==========================================
# REQUEST SCHEMAS
# ==========================================

class ReservationCreate(BaseModel):
    """
    Body for creating a reservation.

    start_date / end_date stay strings here; normalization (and the
    start <= end rule) belongs to the coordinator so every caller gets it.
    """
    resource_id: str = Field(..., min_length=1, description="Resource (billboard) id")
    client_id: str = Field(..., min_length=1, description="Client id")
    start_date: str = Field(..., description="First rented day, ISO-8601")
    end_date: str = Field(..., description="Last rented day (inclusive), ISO-8601")

    @field_validator('resource_id', 'client_id')
    @classmethod
    def strip_ids(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('id must not be blank')
        return cleaned


class ResourceCreate(BaseModel):
    """Body for registering a resource."""
    label: str = Field(default="", max_length=120, description="Display label (e.g. plate number)")

    @field_validator('label')
    @classmethod
    def strip_label(cls, v: str) -> str:
        return v.strip()
