from godplan.models.user import DEFAULT_TENANT_ID, Employee, User, UserRole
from godplan.models.attendance import Attendance, AttendanceStatus, AttendanceType

__all__ = [
    "DEFAULT_TENANT_ID",
    "User",
    "UserRole",
    "Employee",
    "Attendance",
    "AttendanceStatus",
    "AttendanceType",
]
