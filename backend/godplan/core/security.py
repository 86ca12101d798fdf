"""Password hashing, bearer tokens and the request authentication stage."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


# ── Passwords ────────────────────────────────────────────────────────

def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or an over-long password
        return False


# ── Tokens ───────────────────────────────────────────────────────────

class InvalidTokenError(Exception):
    """Token is malformed, expired, wrongly signed or of the wrong type."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    email: str
    role: str
    type: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and validates HS256 bearer tokens signed with a shared secret."""

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta = timedelta(hours=24),
        refresh_ttl: timedelta = timedelta(days=7),
        leeway: int = 0,
    ):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.leeway = leeway

    def issue(self, user_id: uuid.UUID, email: str, role: str, issued_at: Optional[datetime] = None) -> str:
        """Mint an access token. Same inputs and ``issued_at`` give the same token."""
        return self._encode(user_id, email, role, ACCESS_TOKEN, self.access_ttl, issued_at)

    def issue_refresh(self, user_id: uuid.UUID, issued_at: Optional[datetime] = None) -> str:
        return self._encode(user_id, "", "", REFRESH_TOKEN, self.refresh_ttl, issued_at)

    def validate(self, token: str) -> TokenClaims:
        return self._decode(token, ACCESS_TOKEN)

    def validate_refresh(self, token: str) -> TokenClaims:
        return self._decode(token, REFRESH_TOKEN)

    def _encode(self, user_id, email, role, token_type, ttl, issued_at) -> str:
        iat = issued_at or datetime.now(timezone.utc)
        payload = {
            "user_id": str(user_id),
            "email": email,
            "role": role,
            "type": token_type,
            "iat": int(iat.timestamp()),
            "exp": int((iat + ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM, headers={"typ": "JWT"})

    def _decode(self, token: str, expected_type: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                leeway=self.leeway,
                options={"require": ["exp", "iat", "user_id"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidTokenError(str(e)) from e

        # Tokens minted before the type claim existed are access tokens
        token_type = payload.get("type") or ACCESS_TOKEN
        if token_type != expected_type:
            raise InvalidTokenError("invalid token type")

        try:
            user_id = uuid.UUID(str(payload["user_id"]))
        except ValueError as e:
            raise InvalidTokenError("invalid user_id claim") from e

        return TokenClaims(
            user_id=user_id,
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            type=token_type,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


# ── Request authentication ───────────────────────────────────────────

@dataclass(frozen=True)
class Principal:
    """Authenticated caller attached to ``request.state.principal``."""
    user_id: uuid.UUID
    email: str
    role: str


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from ``Bearer <token>``; raises 401 on any other shape."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise HTTPException(status_code=401, detail="Invalid authorization format")
    return parts[1]


def authenticate(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Principal:
    """Validate the bearer token and attach the principal to the request state."""
    token = parse_bearer(authorization)
    try:
        claims = get_token_service(request).validate(token)
    except InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    principal = Principal(user_id=claims.user_id, email=claims.email, role=claims.role)
    request.state.principal = principal
    return principal


def current_user_id(request: Request) -> uuid.UUID:
    """User id of the authenticated caller, read from the request state."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(status_code=401, detail="User not authenticated")
    if not isinstance(principal, Principal) or not isinstance(principal.user_id, uuid.UUID):
        logger.error(f"Unexpected principal in request state: {type(principal).__name__}")
        raise HTTPException(status_code=500, detail="Invalid user ID")
    return principal.user_id


def parse_tenant_id(value: Optional[str]) -> uuid.UUID:
    if not value:
        raise HTTPException(status_code=401, detail="Tenant ID required")
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid tenant ID format")


def require_tenant(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID")) -> uuid.UUID:
    """Tenant identifier supplied by the caller; 401 when absent or malformed."""
    return parse_tenant_id(x_tenant_id)


def optional_tenant(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID")) -> Optional[uuid.UUID]:
    """Tenant identifier when supplied; still 401 when present but malformed."""
    if x_tenant_id is None:
        return None
    return parse_tenant_id(x_tenant_id)
