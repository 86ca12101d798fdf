import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from godplan.core.config import Settings
from godplan.core.database import Database
from godplan.main import create_app
from godplan.models.user import DEFAULT_TENANT_ID, UserRole
from godplan.services.auth import UserService

TEST_SECRET = "test-secret-key"
OFFICE = (-6.2000, 106.8000)
PASSWORD = "P@ssword12"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        DATABASE_URL="sqlite://",
        JWT_SECRET=TEST_SECRET,
        OFFICE_LATITUDE=OFFICE[0],
        OFFICE_LONGITUDE=OFFICE[1],
        ATTENDANCE_RADIUS_METERS=100.0,
        ENABLE_LOCATION_CHECK=True,
    )


@pytest.fixture
def database():
    # One shared in-memory connection so every session sees the same tables
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db = Database(engine=engine)
    yield db
    engine.dispose()


@pytest.fixture
def app(settings, database):
    return create_app(settings=settings, database=database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, username="ali", email="ali@x.io", password=PASSWORD, role=None, tenant_id=None):
    body = {"username": username, "full_name": username.title(), "email": email, "password": password}
    if role:
        body["role"] = role
    headers = {"X-Tenant-ID": str(tenant_id)} if tenant_id else {}
    return client.post("/api/v1/auth/register", json=body, headers=headers)


def auth_headers(token, tenant_id=None):
    headers = {"Authorization": f"Bearer {token}"}
    if tenant_id:
        headers["X-Tenant-ID"] = str(tenant_id)
    return headers


@pytest.fixture
def token(client):
    resp = register(client)
    assert resp.status_code == 201
    return resp.json()["data"]["token"]


def create_admin(app, database, tenant_id=DEFAULT_TENANT_ID, username="boss", email="boss@x.io"):
    """Insert an admin directly; public registration only creates employees."""
    with database.session() as db:
        user = UserService(db, tenant_id).create(username=username, email=email, password=PASSWORD, role=UserRole.ADMIN)
        return app.state.tokens.issue(user.id, user.email, user.role)
