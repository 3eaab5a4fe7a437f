"""
AssetLogix - Test Configuration
===============================
Pytest fixtures and markers.

Environment variables are set before any application module is imported,
since settings are read once and cached.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Dict

import pytest
import pytest_asyncio

# Add backend to path for imports
BACKEND_PATH = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(BACKEND_PATH))

TEST_ROOT = Path(tempfile.mkdtemp(prefix="assetlogix-tests-"))

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-password-123"

os.environ["SESSION_SECRET"] = "test-session-secret-0123456789"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_ROOT / 'default.db'}"
os.environ["UPLOAD_DIR"] = str(TEST_ROOT / "uploads")
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["ADMIN_USERNAME"] = ADMIN_USERNAME
os.environ["ADMIN_PASSWORD"] = ADMIN_PASSWORD
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ.pop("SENDGRID_API_KEY", None)


# =============================================================================
# Test Run Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Services driven directly against a temporary database"
    )
    config.addinivalue_line(
        "markers", "integration: HTTP tests through the FastAPI application"
    )


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings for every test so monkeypatched env vars apply."""
    from config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch) -> Path:
    """Point storage at an empty per-test upload directory."""
    from config import get_settings
    from services.storage import ensure_upload_dirs

    root = tmp_path / "uploads"
    monkeypatch.setenv("UPLOAD_DIR", str(root))
    get_settings.cache_clear()
    ensure_upload_dirs()
    return root


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Temporary SQLite database with every table created."""
    from database.session import build_engine
    from models import Base

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    """Session factory for the temporary database, with system roles seeded."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from database.migrations import seed_system_roles

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_system_roles(session)
        await session.commit()

    return factory


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seeded_users(session) -> Dict[str, object]:
    """An admin, a technician and two plain users, flushed in `session`."""
    from services.user_service import UserService

    users = UserService.from_session(session)
    return {
        "admin": await users.create_user("root", "root-pass", "root@example.com", "Root", role="admin"),
        "technician": await users.create_user(
            "tech", "tech-pass", "tech@example.com", "Tech", role="technician"
        ),
        "alice": await users.create_user("alice", "alice-pass", "alice@example.com", "Alice"),
        "bob": await users.create_user("bob", "bob-pass", "bob@example.com", "Bob"),
    }


# =============================================================================
# HTTP Test Client
# =============================================================================

@pytest.fixture
def client(tmp_path, monkeypatch):
    """
    TestClient against a fresh database.

    Startup patches the schema and creates the bootstrap administrator.
    """
    from fastapi.testclient import TestClient
    from config import get_settings

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    get_settings.cache_clear()

    from main import app

    with TestClient(app) as test_client:
        yield test_client


def login(client, username: str, password: str) -> Dict[str, str]:
    response = client.post("/api/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def create_user(client, admin_headers, username: str, role: str = "user") -> Dict[str, object]:
    """Create a user through the admin API and log them in."""
    password = f"{username}-password"
    response = client.post(
        "/api/users",
        json={
            "username": username,
            "password": password,
            "email": f"{username}@example.com",
            "name": username.title(),
            "role": role,
        },
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return {"id": response.json()["id"], "headers": login(client, username, password)}


@pytest.fixture
def admin_headers(client) -> Dict[str, str]:
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def technician(client, admin_headers) -> Dict[str, object]:
    return create_user(client, admin_headers, "techie", role="technician")


@pytest.fixture
def regular_user(client, admin_headers) -> Dict[str, object]:
    return create_user(client, admin_headers, "regular")
