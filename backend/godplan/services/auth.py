import logging
import uuid
from datetime import date
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from godplan.core.database import apply_deadline
from godplan.core.security import InvalidTokenError, TokenService, get_password_hash, verify_password
from godplan.models.user import Employee, User, UserRole
from godplan.schemas.user import AuthPayload, RegisterRequest, UserOut

logger = logging.getLogger(__name__)

AUTH_DEADLINE_SECONDS = 10
INVALID_CREDENTIALS = "Invalid email or password"


def employee_code(user_id: uuid.UUID) -> str:
    return f"EMP-{str(user_id)[:8]}"


class AuthService:
    def __init__(self, db: Session, tokens: TokenService):
        self.db = db
        self.tokens = tokens

    def _issue(self, user: User) -> AuthPayload:
        return AuthPayload(
            token=self.tokens.issue(user.id, user.email, user.role),
            refresh_token=self.tokens.issue_refresh(user.id),
            user=UserOut.from_user(user),
        )

    def register(self, data: RegisterRequest, tenant_id: uuid.UUID) -> AuthPayload:
        """Self-service signup. Always creates an employee, then logs them in."""
        if data.role and data.role.lower() != UserRole.EMPLOYEE:
            raise HTTPException(status_code=403, detail="Only employee accounts can be self-registered")

        apply_deadline(self.db, AUTH_DEADLINE_SECONDS)
        user = UserService(self.db, tenant_id).create(
            username=data.username,
            email=data.email,
            password=data.password,
            full_name=data.full_name,
            phone=data.phone,
            role=UserRole.EMPLOYEE,
        )
        logger.info(f"User registered: id={user.id} tenant={tenant_id}")
        return self._issue(user)

    def login(self, email: str, password: str, tenant_id: uuid.UUID) -> AuthPayload:
        apply_deadline(self.db, AUTH_DEADLINE_SECONDS)
        try:
            user = self.db.query(User).filter(
                User.tenant_id == tenant_id,
                User.email == email,
                User.is_active == True,
            ).first()
        except OperationalError as e:
            logger.error(f"Login DB error: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate session")

        # Same answer for unknown email and wrong password
        if not user or not verify_password(password, user.password):
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

        logger.info(f"User logged in: id={user.id}")
        return self._issue(user)

    def refresh(self, refresh_token: str) -> str:
        """New access token for a valid refresh token of a still-active user."""
        try:
            claims = self.tokens.validate_refresh(refresh_token)
        except InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

        # Re-read role and email in case they changed since the refresh token was issued
        user = self.db.query(User).filter(User.id == claims.user_id, User.is_active == True).first()
        if not user:
            raise HTTPException(status_code=401, detail="User no longer active")
        return self.tokens.issue(user.id, user.email, user.role)


class UserService:
    """Tenant-scoped user creation, reads and soft deactivation."""

    def __init__(self, db: Session, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id

    def create(
        self,
        username: str,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        avatar_url: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        """Create a user (and an employee record for employees) in this tenant."""
        role = (role or UserRole.EMPLOYEE).lower()
        if role not in UserRole.ALL:
            raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

        existing = self.db.query(User).filter(
            User.tenant_id == self.tenant_id,
            or_(User.email == email, User.username == username),
        ).first()
        if existing:
            raise HTTPException(status_code=409, detail="Username or email already exists")

        user = User(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            username=username,
            email=email,
            password=get_password_hash(password),
            role=role,
            full_name=full_name or username,
            phone=phone,
            avatar_url=avatar_url or "",
            is_active=True,
        )
        self.db.add(user)
        if role == UserRole.EMPLOYEE:
            user.employee = Employee(
                tenant_id=self.tenant_id,
                user_id=user.id,
                employee_id=employee_code(user.id),
                join_date=date.today(),
            )

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Username or email already exists")
        except OperationalError as e:
            self.db.rollback()
            logger.error(f"Create user DB error: {e}")
            raise HTTPException(status_code=500, detail="Failed to create account. Please try again later.")
        self.db.refresh(user)
        logger.info(f"User created: id={user.id} tenant={self.tenant_id} role={role}")
        return user

    def list_active(self) -> List[User]:
        return self.db.query(User).filter(
            User.tenant_id == self.tenant_id,
            User.is_active == True,
        ).order_by(User.created_at.desc()).all()

    def get(self, user_id: uuid.UUID) -> User:
        user = self.db.query(User).filter(
            User.id == user_id,
            User.tenant_id == self.tenant_id,
            User.is_active == True,
        ).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def get_employee(self, user_id: uuid.UUID) -> Optional[Employee]:
        return self.db.query(Employee).filter(
            Employee.user_id == user_id,
            Employee.tenant_id == self.tenant_id,
        ).first()

    def deactivate(self, user_id: uuid.UUID) -> User:
        user = self.get(user_id)
        user.is_active = False
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User deactivated: id={user_id} tenant={self.tenant_id}")
        return user
