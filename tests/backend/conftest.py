import datetime as dt
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from pixelforge.core import db as db_module
from pixelforge.main import app
from pixelforge.services.audit import InMemoryAuditSink
from pixelforge.services.directory import InMemoryDirectoryStore
from pixelforge.services.policy import AccountPolicy
from pixelforge.services.projects import ProjectService
from pixelforge.services.sessions import SessionService
from pixelforge.services.tasks import TaskService
from pixelforge.services.workspace import InMemoryWorkspaceStore


TEST_DB_URL = "sqlite://:memory:"


class FakeClock:
    """Callable clock for SessionService; tests move it forward explicitly."""

    def __init__(self, start: dt.datetime | None = None):
        self.now = start or dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDirectoryStore()


@pytest.fixture
def audit():
    return InMemoryAuditSink()


@pytest.fixture
def sessions(store, audit, clock):
    """
    SessionService over in-memory storage with the default policy
    (3 attempts, 90 days, admins exempt) and a controllable clock.
    """
    return SessionService(store, audit, policy=AccountPolicy(), mfa_setup_ttl=dt.timedelta(minutes=10), clock=clock)


@pytest.fixture
def workspace():
    return InMemoryWorkspaceStore()


@pytest.fixture
def projects(store, audit, workspace, sessions):
    service = ProjectService(store, audit, workspace)
    sessions.add_dependent(service)
    return service


@pytest.fixture
def tasks(store, audit, workspace, sessions):
    service = TaskService(store, audit, workspace)
    sessions.add_dependent(service)
    return service


@pytest_asyncio.fixture
async def client(sessions, projects, tasks, audit):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with fresh in-memory services.
    """
    app.state.sessions = sessions
    app.state.projects = projects
    app.state.tasks = tasks
    app.state.audit = audit
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    app.state.sessions = None
    app.state.projects = None
    app.state.tasks = None
    app.state.audit = None


@pytest_asyncio.fixture
async def create_admin(sessions):
    """
    Factory fixture to create admin accounts directly through the service.
    """

    async def _create_admin(password: str = "AdminPass!23"):
        username = f"admin_{uuid.uuid4().hex[:6]}"
        result = await sessions.create_admin({
            "name": "Ada Admin",
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
        })
        assert result.success, result.message
        return result.user, password

    return _create_admin


@pytest_asyncio.fixture
async def create_user(sessions):
    """
    Factory fixture to create project-lead / developer accounts directly.
    """

    async def _create_user(role: str = "developer", password: str = "UserPass!23", username: str | None = None):
        username = username or f"user_{uuid.uuid4().hex[:6]}"
        result = await sessions.create_user(
            {
                "name": "Dev User",
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
            },
            role,
        )
        assert result.success, result.message
        return result.user, password

    return _create_user


@pytest_asyncio.fixture
async def auth_header_factory(client):
    """
    Helper fixture to obtain Authorization headers via the login endpoint.
    """

    async def _get_headers(username: str, password: str) -> dict[str, str]:
        resp = await client.post(
            "/api/v1/auth/login",
            json={"username": username, "password": password},
        )
        assert resp.status_code == 200, resp.text
        token = resp.json()["data"]["accessToken"]
        return {"Authorization": f"Bearer {token}"}

    return _get_headers


@pytest_asyncio.fixture
async def tortoise_db():
    """
    Initialize a clean in-memory SQLite database for a test.
    Tables are recreated from scratch.
    """
    config = {**db_module.TORTOISE_ORM, "connections": {"default": TEST_DB_URL}}
    await Tortoise.init(config=config)
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()
