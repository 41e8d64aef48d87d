import asyncio
import inspect
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

os.environ.setdefault("JWT_SECRET", "test-access-secret-key-for-testing-only")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-key-for-testing-only")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from budget_auth.core.config import Settings  # noqa: E402
from budget_auth.core.security import utc_now  # noqa: E402
from budget_auth.db.base import Base  # noqa: E402
from budget_auth.db.database import PostgresDatabase, SqliteDatabase  # noqa: E402
from budget_auth.main import create_app  # noqa: E402
from budget_auth.services.runtime import AuthRuntime  # noqa: E402

ADMIN_PASSWORD = "Adm1n!Password-for-tests"
USER_PASSWORD = "User!Passw0rd-for-tests"
CLIENT_SECRET = "c" * 40
REDIRECT_URI = "https://n8n.example.com/rest/oauth2-credential/callback"


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ENVIRONMENT="test",
        JWT_SECRET="test-access-secret-key-for-testing-only",
        JWT_REFRESH_SECRET="test-refresh-secret-key-for-testing-only",
        JWT_ALGORITHM="HS256",
        JWT_ISSUER="actual-wrapper",
        JWT_AUDIENCE="n8n",
        ACCESS_TTL_SECONDS=3600,
        REFRESH_TTL_SECONDS=86400,
        LEEWAY_SECONDS=30,
        AUTH_CODE_TTL_SECONDS=600,
        LOGIN_RATE_LIMIT=5,
        LOGIN_RATE_WINDOW_SECONDS=900,
        DB_TYPE="sqlite",
        AUTH_DB_PATH=str(tmp_path / "auth.db"),
        POSTGRES_URL=None,
        ADMIN_USER="admin",
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        OAUTH_DEFAULT_CLIENT_ID=None,
        OAUTH_DEFAULT_CLIENT_SECRET=None,
        SESSION_SECRET="test-session-secret-0123456789abcdef",
        SESSION_COOKIE_SECURE=False,
        ALLOWED_ORIGINS="http://localhost:5678",
    )


def _reset_postgres(db: PostgresDatabase) -> None:
    Base.metadata.create_all(db.engine)
    with db.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(params=["sqlite", "postgres"])
def database(request, settings):
    """Both backends; PostgreSQL only when TEST_POSTGRES_URL is set."""
    if request.param == "postgres":
        url = os.getenv("TEST_POSTGRES_URL")
        if not url:
            pytest.skip("TEST_POSTGRES_URL not set")
        db = PostgresDatabase(url)
        _reset_postgres(db)
    else:
        db = SqliteDatabase(settings.AUTH_DB_PATH)
    yield db
    db.engine.dispose()


@pytest.fixture
def sqlite_database(settings):
    db = SqliteDatabase(settings.AUTH_DB_PATH)
    yield db
    db.engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runtime(settings, database, clock):
    return AuthRuntime(settings, database, clock=clock)


@pytest.fixture
def app(settings, sqlite_database):
    return create_app(settings, sqlite_database)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user():
    async def _make(runtime, username="alice", password=USER_PASSWORD, role="user", scopes="api"):
        return await runtime.credentials.create_user(username, password, role=role, scopes=scopes)

    return _make
