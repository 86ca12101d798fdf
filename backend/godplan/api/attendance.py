"""Attendance API - geofenced clock-in / clock-out, location check and history."""
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from godplan.core.database import get_db
from godplan.core.responses import success
from godplan.core.security import authenticate, current_user_id
from godplan.models.attendance import AttendanceType
from godplan.schemas.attendance import AttendanceOut, ClockRequest, LocationCheckOut, LocationCheckRequest
from godplan.services.attendance import AttendanceService, ClockResult, parse_date_filter, parse_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"], dependencies=[Depends(authenticate)])


def get_attendance_service(request: Request, db: Session = Depends(get_db)) -> AttendanceService:
    state = request.app.state
    return AttendanceService(db, state.geofence, state.clock)


def _clock_out_payload(result: ClockResult) -> AttendanceOut:
    out = AttendanceOut.model_validate(result.attendance)
    out.distance = result.distance
    out.max_radius = result.max_radius
    return out


# ── Location Check ───────────────────────────────────────────────────

@router.post("/check-location")
def check_location(data: LocationCheckRequest, request: Request):
    """Stateless geofence query; never writes."""
    validation = request.app.state.geofence.validate(data.latitude, data.longitude)
    return success(LocationCheckOut(**asdict(validation)), "Location validation successful")


# ── Clock In / Out ───────────────────────────────────────────────────

@router.post("/clock-in", status_code=201)
def clock_in(
    data: ClockRequest,
    request: Request,
    service: AttendanceService = Depends(get_attendance_service),
):
    user_id = current_user_id(request)
    result = service.record(user_id, AttendanceType.IN, data.latitude, data.longitude, data.photo_selfie, data.force)
    return success(_clock_out_payload(result), "Clock in successful")


@router.post("/clock-out")
def clock_out(
    data: ClockRequest,
    request: Request,
    service: AttendanceService = Depends(get_attendance_service),
):
    user_id = current_user_id(request)
    result = service.record(user_id, AttendanceType.OUT, data.latitude, data.longitude, data.photo_selfie, data.force)
    return success(_clock_out_payload(result), "Clock out successful")


# ── My History ───────────────────────────────────────────────────────

@router.get("")
def get_attendance(
    request: Request,
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    limit: Optional[str] = Query(None),
    service: AttendanceService = Depends(get_attendance_service),
):
    """The caller's attendance, newest first, optionally restricted to one day."""
    user_id = current_user_id(request)
    entries = service.history(user_id, parse_date_filter(date), parse_limit(limit))
    data = [
        AttendanceOut.model_validate(e).model_dump(exclude={"distance", "max_radius"})
        for e in entries
    ]
    return success(data, "Attendance records retrieved")
