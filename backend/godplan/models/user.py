import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from godplan.core.database import Base

DEFAULT_TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


class UserRole:
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

    ALL = (ADMIN, MANAGER, EMPLOYEE)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_users_tenant_username"),
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    username = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    password = Column(String, nullable=False)  # bcrypt hash
    full_name = Column(String, nullable=True)

    role = Column(String, default=UserRole.EMPLOYEE, nullable=False)
    phone = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    employee = relationship("Employee", back_populates="user", uselist=False)


class Employee(Base):
    """Tenant-scoped employment attributes of a user."""
    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_employees_tenant_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    employee_id = Column(String, nullable=False)  # human-facing code, e.g. EMP-1a2b3c4d

    department = Column(String, nullable=True)
    position = Column(String, nullable=True)
    employment_type = Column(String, default="full_time")
    work_schedule = Column(String, nullable=True)
    join_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="employee")
