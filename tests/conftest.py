"""Shared pytest fixtures for the role and data permission tests."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bizrole.core import config
from bizrole.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from bizrole.features.data_permissions.models import DataPermissionRule
from bizrole.features.data_permissions.persistence import RulePersistence
from bizrole.features.roles.models import Role
from bizrole.features.roles.store import RoleStore


@pytest_asyncio.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory database with all tables for each test."""

    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest_asyncio.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def make_role(db: AsyncSession) -> Callable[..., Awaitable[Role]]:
    """Create and persist a role; extra keyword arguments are set as attributes."""

    store = RoleStore(db)

    async def _make(name: str, title: str | None = None, **attrs: Any) -> Role:
        role = Role.create(name, title or name.title())
        for key, value in attrs.items():
            setattr(role, key, value)
        return await store.save(role)

    return _make


@pytest_asyncio.fixture()
async def make_rule(db: AsyncSession) -> Callable[..., Awaitable[DataPermissionRule]]:
    """Create and persist a data permission rule, valid unless told otherwise."""

    rules = RulePersistence(db)

    async def _make(role: Role, entity_class: str, statement: str, valid: bool = True) -> DataPermissionRule:
        rule = DataPermissionRule.create(role, entity_class, statement)
        rule.valid = valid
        return await rules.save(rule)

    return _make


@pytest_asyncio.fixture()
async def client(db: AsyncSession) -> AsyncIterator[AsyncClient]:
    """HTTPX client bound to the app, sharing the test session."""

    from bizrole.main import app, limiter

    async def _get_db() -> AsyncIterator[AsyncSession]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    limiter.enabled = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest_asyncio.fixture()
async def root_headers(db: AsyncSession) -> dict[str, str]:
    """Headers for a principal holding an admin role."""

    store = RoleStore(db)
    role = Role.create("admin", "系统管理员")
    role.is_admin = True
    await store.save(role)
    await store.assign_principal(role, "root")
    return {config.PRINCIPAL_HEADER: "root"}
