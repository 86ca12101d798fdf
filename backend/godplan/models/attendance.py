"""Attendance events produced by clock-in / clock-out.

Rows are append-only. A row's status is derived from the geofence check:
- approved: the caller was inside the office radius
- forced: the caller was outside but explicitly overrode the check
Rejected attempts are never written.
"""
import enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from godplan.core.database import Base


class AttendanceType(str, enum.Enum):
    IN = "in"
    OUT = "out"


class AttendanceStatus(str, enum.Enum):
    APPROVED = "approved"
    FORCED = "forced"
    REJECTED = "rejected"


class Attendance(Base):
    """Individual clock-in or clock-out event."""
    __tablename__ = "attendances"
    __table_args__ = (
        Index("ix_attendances_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    type = Column(String(3), nullable=False)
    status = Column(String(16), nullable=False)

    # GPS location (WGS-84 decimal degrees)
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)

    # Opaque base64 blob, stored verbatim
    photo_selfie = Column(Text, nullable=True)

    in_range = Column(Boolean, nullable=False)
    force_attendance = Column(Boolean, nullable=False, default=False)

    # Server clock, set by the attendance engine
    created_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User")
