"""Auth API - registration, login and access-token refresh (public)."""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from godplan.core.database import get_db
from godplan.core.responses import success
from godplan.core.security import get_token_service, optional_tenant
from godplan.models.user import DEFAULT_TENANT_ID
from godplan.schemas.user import LoginRequest, RefreshRequest, RegisterRequest
from godplan.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def get_auth_service(request: Request, db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db, get_token_service(request))


@router.post("/register", status_code=201)
def register(
    data: RegisterRequest,
    request: Request,
    tenant_id: Optional[uuid.UUID] = Depends(optional_tenant),
    service: AuthService = Depends(get_auth_service),
):
    """Create an account and return an access token, a refresh token and the user."""
    request.app.state.db.health()
    payload = service.register(data, tenant_id or DEFAULT_TENANT_ID)
    return success(payload, "User registered successfully")


@router.post("/login")
def login(
    credentials: LoginRequest,
    request: Request,
    tenant_id: Optional[uuid.UUID] = Depends(optional_tenant),
    service: AuthService = Depends(get_auth_service),
):
    request.app.state.db.health()
    payload = service.login(credentials.email, credentials.password, tenant_id or DEFAULT_TENANT_ID)
    return success(payload, "Login successful")


@router.post("/refresh")
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    return success({"token": service.refresh(body.refresh_token)}, "Token refreshed")
