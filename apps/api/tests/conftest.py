"""
Pytest configuration and fixtures

Every test gets a fresh container: the local backend writes to its own
temporary directory and the remote backend to a private in-memory SQLite
database, so nothing leaks between tests.
"""
import pytest
import sys
import os
import tempfile

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATA_SOURCE", "local")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCAL_STORAGE_DIR", tempfile.mkdtemp(prefix="fitcoach-test-"))
os.environ.setdefault("LOG_FORMAT", "text")
# Nothing listens here: rate limiting uses in-process counters
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("STRIPE_SECRET_KEY", None)

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from core.container import container
from core.database import build_engine, init_db
from core.modules import setup_modules
from services.local_store import LocalStorageService
from main import app


@pytest.fixture
def store(tmp_path):
    """A local store seeded with the demo dataset."""
    return LocalStorageService(str(tmp_path / "local"))


@pytest.fixture
def empty_store(tmp_path):
    return LocalStorageService(str(tmp_path / "empty"), seed_demo_data=False)


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory database with every table created."""
    engine = build_engine("sqlite://")
    init_db(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def local_container(tmp_path):
    container.clear()
    setup_modules(container, "local", storage_dir=str(tmp_path / "app"))
    yield container
    container.clear()


@pytest.fixture
def remote_container(session_factory):
    container.clear()
    setup_modules(container, "remote", session_factory=session_factory)
    yield container
    container.clear()


@pytest.fixture
def client(local_container):
    """API client over the local backend with demo data."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def remote_client(remote_container):
    """API client over the SQL backend (empty database)."""
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(test_client, role: str = "trainer") -> dict:
    """Bearer header for a demo account via quick login."""
    response = test_client.post(f"/v1/auth/quick-login/{role}")
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def trainer_headers(client):
    return auth_headers(client, "trainer")


@pytest.fixture
def admin_headers(client):
    return auth_headers(client, "admin")


@pytest.fixture
def student_headers(client):
    return auth_headers(client, "student")
