"""Users API - tenant-scoped user creation, listing, lookup, profile and deactivation."""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from godplan.core.database import get_db
from godplan.core.responses import success
from godplan.core.security import Principal, authenticate, current_user_id, require_tenant
from godplan.models.user import UserRole
from godplan.schemas.user import CreateUserRequest, ProfileOut, UserOut
from godplan.services.auth import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["users"], dependencies=[Depends(authenticate)])


def get_user_service(
    tenant_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db),
) -> UserService:
    return UserService(db, tenant_id)


def require_admin(principal: Principal):
    if principal.role.lower() != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")


@router.get("/profile")
def get_profile(request: Request, service: UserService = Depends(get_user_service)):
    """The caller's user record joined with their employee record."""
    user = service.get(current_user_id(request))
    profile = ProfileOut.model_validate(UserOut.from_user(user).model_dump())

    employee = service.get_employee(user.id)
    if employee:
        profile.employee_id = employee.employee_id
        profile.department = employee.department
        profile.position = employee.position
        profile.employment_type = employee.employment_type
        profile.work_schedule = employee.work_schedule
        profile.join_date = employee.join_date
    return success(profile, "Profile retrieved")


@router.get("/users")
def list_users(service: UserService = Depends(get_user_service)):
    users = [UserOut.from_user(u) for u in service.list_active()]
    return success(users, "Users retrieved successfully")


@router.post("/users", status_code=201)
def create_user(
    data: CreateUserRequest,
    request: Request,
    principal: Principal = Depends(authenticate),
    service: UserService = Depends(get_user_service),
):
    """Create a user in the caller's tenant (admin only)."""
    require_admin(principal)
    request.app.state.db.health()
    user = service.create(**data.model_dump())
    return success(UserOut.from_user(user), "User created successfully")


@router.get("/users/{user_id}")
def get_user(user_id: uuid.UUID, service: UserService = Depends(get_user_service)):
    return success(UserOut.from_user(service.get(user_id)), "User retrieved successfully")


@router.patch("/users/{user_id}/deactivate")
def deactivate_user(
    user_id: uuid.UUID,
    principal: Principal = Depends(authenticate),
    service: UserService = Depends(get_user_service),
):
    """Soft-deactivate a user of the tenant (admin only)."""
    require_admin(principal)
    user = service.deactivate(user_id)
    return success(UserOut.from_user(user), "User deactivated")
