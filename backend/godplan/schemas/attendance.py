from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClockRequest(BaseModel):
    # Missing coordinates default to 0.0 and are geofenced like any other point;
    # non-finite values are rejected
    latitude: float = Field(0.0, ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(0.0, ge=-180, le=180, allow_inf_nan=False)
    photo_selfie: str = ""
    force: bool = False


class LocationCheckRequest(BaseModel):
    latitude: float = Field(0.0, ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(0.0, ge=-180, le=180, allow_inf_nan=False)


class LocationCheckOut(BaseModel):
    in_range: bool
    message: str
    need_force: bool
    distance: float
    max_radius: float


class AttendanceOut(BaseModel):
    id: int
    user_id: UUID
    type: str
    status: str
    latitude: float
    longitude: float
    photo_selfie: Optional[str] = None
    in_range: bool
    force_attendance: bool
    created_at: datetime
    distance: Optional[float] = None
    max_radius: Optional[float] = None

    class Config:
        from_attributes = True
