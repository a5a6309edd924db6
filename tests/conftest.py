import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import text, update

# Ensure project root on path before importing loopreviews modules
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Configure the app to use a throwaway SQLite database during tests
_test_db_path = Path(tempfile.gettempdir()) / f"loopreviews-test-{os.getpid()}.db"
os.environ["APP_DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_db_path.as_posix()}"
os.environ["APP_DEBUG"] = "false"
os.environ["APP_ENVIRONMENT"] = "test"
os.environ["APP_BASE_URL"] = "https://app.loopreview.test"
os.environ["APP_BCRYPT_ROUNDS"] = "4"
os.environ["APP_RESET_BCRYPT_ROUNDS"] = "4"
# Vendors stay unconfigured unless a test patches settings
for _key in (
    "APP_SMTP_HOST", "APP_SMTP_USER", "APP_SMTP_PASSWORD",
    "APP_TWILIO_ACCOUNT_SID", "APP_TWILIO_AUTH_TOKEN", "APP_TWILIO_PHONE_NUMBER",
    "APP_STRIPE_SECRET_KEY", "APP_STRIPE_WEBHOOK_SECRET",
    "APP_SHOPIFY_CLIENT_ID", "APP_SHOPIFY_CLIENT_SECRET",
    "APP_GOOGLE_CLIENT_ID", "APP_GOOGLE_CLIENT_SECRET", "APP_GOOGLE_PLACES_API_KEY",
    "APP_METRICS_TOKEN", "APP_ALLOWED_REDIRECT_DOMAINS",
):
    os.environ.pop(_key, None)

# Start each test session from a clean database file
if _test_db_path.exists():
    _test_db_path.unlink()

DEFAULT_PASSWORD = "s3cretpass"


async def _clear_database(session) -> None:
    """Remove all data from the database between tests."""
    from loopreviews.models import Base

    await session.execute(text("PRAGMA foreign_keys=OFF"))
    for table in reversed(Base.metadata.sorted_tables):
        await session.execute(table.delete())
    await session.commit()
    await session.execute(text("PRAGMA foreign_keys=ON"))


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create tables before each test, empty them afterwards."""
    from loopreviews.database import AsyncSessionLocal, create_tables, engine
    from loopreviews.services.rate_limiter import click_rate_limiter

    await create_tables()
    click_rate_limiter.reset()
    yield
    async with AsyncSessionLocal() as session:
        await _clear_database(session)
    # Pooled connections belong to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(setup_database):
    """Async database session for direct assertions."""
    from loopreviews.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def make_client(setup_database):
    """Factory for extra HTTP clients, each with its own cookie jar."""
    from loopreviews.main import app

    clients = []

    async def _make() -> httpx.AsyncClient:
        ac = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield _make
    for ac in clients:
        await ac.aclose()


@pytest_asyncio.fixture
async def client(make_client):
    return await make_client()


@pytest.fixture
def signup():
    """Sign a new account up on ``client``; the client keeps the session cookie."""
    async def _signup(client, email="owner@example.com", password=DEFAULT_PASSWORD, **fields):
        body = {"email": email, "password": password, "first_name": "Dana", **fields}
        response = await client.post("/api/auth/signup", json=body)
        assert response.status_code == 200, response.text
        return response.json()["user"]

    return _signup


@pytest_asyncio.fixture
async def owner(client, signup):
    """Signed-in account on ``client``."""
    return await signup(client, company="Blue Door Bakery")


@pytest.fixture
def set_plan(db_session):
    """Move a user onto a subscription plan."""
    async def _set_plan(user_id, plan="pro", status="active", **values):
        from loopreviews.models import User

        await db_session.execute(
            update(User)
            .where(User.id == user_id)
            .values(subscription_type=plan, subscription_status=status, **values)
        )
        await db_session.commit()

    return _set_plan


@pytest.fixture
def review_url_id():
    """Public slug of an account's review link."""
    async def _slug(client):
        response = await client.get("/api/review-link")
        assert response.status_code == 200
        return response.json()["data"]["review_url"].rsplit("/r/", 1)[1]

    return _slug
