"""Attendance engine: geofence-gated clock-in / clock-out and history reads.

An attempt outside the office radius is rejected unless the caller sets
``force``; rejected attempts never reach the database. Accepted attempts are
written as a single INSERT with a derived status:

- in range             -> approved (``force`` recorded, ignored)
- out of range + force -> forced
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from godplan.models.attendance import Attendance, AttendanceStatus, AttendanceType
from godplan.services.geofence import GeofencePolicy, GeofenceResult, format_distance

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 30


class MonotonicClock:
    """Wall clock that never returns the same or an earlier instant twice."""

    def __init__(self, now=None):
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self._now()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


@dataclass(frozen=True)
class ClockResult:
    attendance: Attendance
    distance: float
    max_radius: float


def derive_status(geofence: GeofenceResult, force: bool) -> AttendanceStatus:
    if geofence.in_range:
        return AttendanceStatus.APPROVED
    if force:
        return AttendanceStatus.FORCED
    return AttendanceStatus.REJECTED


class AttendanceService:
    def __init__(self, db: Session, policy: GeofencePolicy, clock: MonotonicClock):
        self.db = db
        self.policy = policy
        self.clock = clock

    def record(
        self,
        user_id: uuid.UUID,
        kind: AttendanceType,
        latitude: float,
        longitude: float,
        photo_selfie: str,
        force: bool,
    ) -> ClockResult:
        geofence = self.policy.evaluate(latitude, longitude)
        status = derive_status(geofence, force)

        if status is AttendanceStatus.REJECTED:
            logger.info(
                f"Clock-{kind.value} rejected for user {user_id}: "
                f"{geofence.distance:.0f}m > {self.policy.radius_meters:.0f}m"
            )
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Location is outside the office range ({format_distance(self.policy.radius_meters)}). "
                    "Use force=true to proceed anyway."
                ),
            )
        if status is AttendanceStatus.FORCED:
            logger.info(
                f"Forced clock-{kind.value} for user {user_id}: "
                f"{geofence.distance:.0f}m > {self.policy.radius_meters:.0f}m"
            )

        entry = Attendance(
            user_id=user_id,
            type=kind.value,
            status=status.value,
            latitude=latitude,
            longitude=longitude,
            photo_selfie=photo_selfie,
            in_range=geofence.in_range,
            force_attendance=force,
            created_at=self.clock(),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(entry)

        logger.info(f"Clock-{kind.value} recorded: id={entry.id} user={user_id} status={entry.status}")
        return ClockResult(attendance=entry, distance=geofence.distance, max_radius=self.policy.radius_meters)

    def history(self, user_id: uuid.UUID, on_date: Optional[date] = None, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Attendance]:
        """The caller's own events, newest first."""
        query = self.db.query(Attendance).filter(Attendance.user_id == user_id)
        if on_date is not None:
            query = query.filter(func.date(Attendance.created_at) == on_date)
        return query.order_by(Attendance.created_at.desc()).limit(limit).all()


def parse_limit(raw: Optional[str]) -> int:
    """Positive integer limit; anything else falls back to the default."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_HISTORY_LIMIT
    return limit if limit > 0 else DEFAULT_HISTORY_LIMIT


def parse_date_filter(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format, expected YYYY-MM-DD")
