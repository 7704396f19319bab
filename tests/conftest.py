"""
Shared fixtures

Every test gets a fresh in-memory SQLite database built from the ORM
metadata, a session configured like the production one, and helpers to
create users and catalog rows.
"""
import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carepath.database import Base, get_db
import carepath.models  # noqa: F401  registers every table on Base.metadata
from carepath.models import User
from carepath.services.cache_invalidator import CacheInvalidator
from carepath.services.catalog import CatalogService


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
def cache():
    """Cache signal collector with Redis disabled; published paths stay inspectable"""
    return CacheInvalidator()


@pytest.fixture
def make_user(session):
    async def _make_user(role: str = "patient", first_name: str = "Pat", is_active: bool = True) -> User:
        user = User(
            email=f"{role}-{uuid.uuid4().hex[:8]}@carepath.test",
            first_name=first_name,
            last_name="Example",
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        return user
    return _make_user


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", first_name="Avery")


@pytest.fixture
async def patient(make_user):
    return await make_user("patient", first_name="Pat")


@pytest.fixture
def catalog(session, cache):
    return CatalogService(session, cache)


@pytest.fixture
def make_program(catalog, admin):
    """Program factory; modules are (title, is_required) pairs appended in order"""
    async def _make_program(
        title: str = "Detox-30",
        category=None,
        duration_days=30,
        modules=(("Getting Started", True),),
        is_self_paced: bool = False,
    ):
        if category is None:
            category = await catalog.create_category(f"Recovery {uuid.uuid4().hex[:6]}")
        program = await catalog.create_program(
            title, category.id, duration_days=duration_days, is_self_paced=is_self_paced, created_by=admin.id
        )
        for module_title, required in modules:
            await catalog.create_module(program.id, module_title, is_required=required, created_by=admin.id)
        return program
    return _make_program


@pytest.fixture
async def client(session):
    """HTTP client against the app, sharing the test session"""
    from main import app

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Gateway headers for acting as a given user"""
    from carepath.api.auth import API_TOKEN

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {API_TOKEN}", "X-User-Id": str(user.id)}
    return _headers
