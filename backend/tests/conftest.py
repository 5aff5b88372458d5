import os
import sys
import asyncio

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture(scope="session")
def session_loop():
    """Single event loop for all sync fixtures that need to run async DB code."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()

# Register the profile and match tables with the declarative Base so
# metadata.create_all creates them when the test database is initialised.
from app import db, models  # noqa: F401

# A sufficiently long JWT secret for tests
TEST_JWT_SECRET = "x" * 32
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("DISABLE_RATE_LIMITS", "true")
# Honour any externally provided DATABASE_URL (e.g. CI may set a file-backed DB)
# but fall back to an in-memory SQLite database so local runs remain isolated.
DEFAULT_DB_URL = os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Ensure a strong JWT secret is present for all tests."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    yield


@pytest.fixture(autouse=True)
def no_summary_service(monkeypatch):
    """Keep tests from reaching a real Azure OpenAI deployment."""
    for name in ("AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True, scope="session")
def ensure_database(session_loop):
    """Start from a fresh engine bound to DATABASE_URL; dispose it at the end."""

    mp = pytest.MonkeyPatch()
    url = os.getenv("DATABASE_URL") or DEFAULT_DB_URL
    mp.setenv("DATABASE_URL", url)

    # A file-backed SQLite database from an earlier run would leak rows
    if url.startswith("sqlite") and ":memory:" not in url:
        path = url.split("///")[-1]
        if os.path.exists(path):
            os.remove(path)

    session_loop.run_until_complete(db.dispose_engine())
    yield
    session_loop.run_until_complete(db.dispose_engine())
    mp.undo()


async def _reset_schema() -> None:
    async with db.get_engine().begin() as conn:
        await conn.run_sync(db.Base.metadata.drop_all)
    await db.create_schema()


@pytest.fixture(autouse=True)
def reset_schema(request, session_loop):
    """Drop and recreate every table before each test.

    Tests marked ``preserve_schema`` see whatever the previous test left.
    """

    if request.node.get_closest_marker("preserve_schema"):
        yield
        return

    session_loop.run_until_complete(_reset_schema())
    yield


def make_token(sub: str = "user-1", **claims) -> str:
    import jwt

    payload = {"sub": sub, **claims}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
