"""Test configuration and fixtures."""

import httpx
import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpers import CATALOG_HTML, FakeBackend
from neverend.client.api import ApiClient
from neverend.client.dom import Page
from neverend.core.config import ClientSettings, settings
from neverend.core.database import Base, get_db
from neverend.core.dependencies import clear_idempotency_cache
from neverend.models import *  # noqa: F403 - Import all models

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from neverend.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        validation_exception_handler,
    )
    from neverend.routers import application, health, metrics, subscription, tour

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Neverend Travel API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health.router)
    app.include_router(tour.router)
    app.include_router(application.router)
    app.include_router(subscription.router)
    app.include_router(metrics.router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    clear_idempotency_cache()

    yield app

    # Clean up
    app.dependency_overrides.clear()
    clear_idempotency_cache()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers():
    """Bearer token accepted by the admin endpoints."""
    token = jwt.encode(
        {"sub": "admin@neverend.travel", "roles": ["admin"]},
        settings.bearer_token_secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing."""
    return {
        "title": "Алтай: долина Чулышман",
        "description": "Неделя в горах Алтая",
        "short_description": "Водопады, перевалы и Телецкое озеро",
        "image_url": "/uploads/altai.jpg",
        "price": 89000,
        "duration": "8 дней",
        "location": "Алтай",
        "date_start": "2025-07-10",
        "date_end": "2025-07-17",
        "max_participants": 12,
        "programs": [
            {"day": 2, "programm": "Перевал Кату-Ярык"},
            {"day": 1, "programm": "Встреча в Горно-Алтайске"},
        ],
        "prices": [
            {"price": 95000, "description": "Двухместное размещение"},
            {"price": 89000, "description": "Трёхместное размещение"},
        ],
        "inclusions": [
            {"item": "Трансфер", "type": "included"},
            {"item": "Авиабилеты", "type": "excluded"},
        ],
    }


@pytest.fixture
def sample_application_data():
    """Sample booking lead for testing."""
    return {
        "name": "Анна",
        "phone": "+7 900 000-00-00",
        "email": "anna@example.com",
        "direction": "Алтай",
        "message": "Хочу в июле",
    }


@pytest.fixture
def client_config():
    """Client settings with the CMS pauses shortened for tests."""
    return ClientSettings(
        site_url="http://test",
        guard_interval_seconds=0.01,
        viewport_debounce_seconds=0.01,
        carousel_retry_delay_seconds=0.01,
        pagination_delay_seconds=0,
        view_all_delay_seconds=0,
        currency_refresh_delay_seconds=0,
        initial_load_delay_seconds=0,
        container_poll_seconds=0.01,
        active_form_window_seconds=0.05,
        submission_lock_seconds=0.05,
        session_grace_seconds=0.05,
    )


@pytest_asyncio.fixture
async def page():
    """The catalog page markup as the CMS serves it."""
    page = Page(CATALOG_HTML)
    yield page
    await page.close()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def api(backend, client_config):
    """API client routed to the fake backend."""
    client = ApiClient(client_config, transport=httpx.MockTransport(backend))
    yield client
    await client.aclose()
