import asyncio

import pytest
from sqlalchemy import func, select

from bizrole.core import config
from bizrole.core.database.engine import build_engine, build_sessionmaker, init_db
from bizrole.core.exceptions import CycleError, DuplicateRoleError, ValidationError
from bizrole.features.data_permissions.models import DataPermissionRule
from bizrole.features.data_permissions.persistence import RulePersistence
from bizrole.features.roles.models import Role, principal_roles
from bizrole.features.roles.store import RoleStore


async def _count(db, model_or_table) -> int:
    result = await db.execute(select(func.count()).select_from(model_or_table))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_save_and_find_by_name(db) -> None:
    store = RoleStore(db, actor="alice")
    role = Role.create("moderator", "内容审核员")

    await store.save(role)
    found = await store.find_by_name("moderator")

    assert found is role
    assert role.id is not None
    assert role.created_by == "alice"
    assert role.updated_by == "alice"
    assert role.created_at is not None


@pytest.mark.asyncio
async def test_find_by_name_is_exact(db, make_role) -> None:
    await make_role("admin")
    store = RoleStore(db)

    assert await store.find_by_name("missing") is None
    assert await store.find_by_name("Admin") is None


@pytest.mark.asyncio
async def test_duplicate_name_is_rejected(db, make_role) -> None:
    await make_role("admin", "系统管理员")
    store = RoleStore(db)

    with pytest.raises(DuplicateRoleError):
        await store.save(Role.create("admin", "Another admin"))

    assert await _count(db, Role) == 1


@pytest.mark.asyncio
async def test_updater_is_recorded_separately(db, make_role) -> None:
    role = await make_role("editor")
    store = RoleStore(db, actor="bob")

    role.title = "Chief editor"
    await store.save(role)

    assert role.created_by is None
    assert role.updated_by == "bob"


@pytest.mark.asyncio
async def test_list_valid_skips_invalid_roles(db, make_role) -> None:
    await make_role("active")
    await make_role("retired", valid=False)

    roles = await RoleStore(db).list_valid()

    assert [role.name for role in roles] == ["active"]


@pytest.mark.asyncio
async def test_list_roles_paginates(db, make_role) -> None:
    for name in ("a", "b", "c"):
        await make_role(name)

    page = await RoleStore(db).list_roles(skip=1, limit=1)

    assert [role.name for role in page] == ["b"]


@pytest.mark.asyncio
async def test_find_or_create_inserts_once(db) -> None:
    store = RoleStore(db)

    created = await store.find_or_create("viewer")
    again = await store.find_or_create("viewer", "Ignored title")

    assert created.id == again.id
    assert again.title == "viewer"
    assert again.valid is True
    assert again.is_admin is False
    assert await _count(db, Role) == 1


@pytest.mark.asyncio
async def test_find_or_create_uses_given_title(db) -> None:
    role = await RoleStore(db).find_or_create("x", "X")

    assert role.title == "X"


@pytest.mark.asyncio
async def test_find_or_create_concurrent_callers_share_one_row(tmp_path) -> None:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'roles.db'}")
    await init_db(engine)
    session_factory = build_sessionmaker(engine)

    async def ensure():
        async with session_factory() as session:
            role = await RoleStore(session).find_or_create("x", "X")
            return role.id

    first_id, second_id = await asyncio.gather(ensure(), ensure())

    assert first_id == second_id
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(Role).where(Role.name == "x"))
        assert result.scalar_one() == 1
    await engine.dispose()


@pytest.mark.asyncio
async def test_find_or_create_rejects_blank_name(db) -> None:
    with pytest.raises(ValidationError):
        await RoleStore(db).find_or_create("  ")


@pytest.mark.asyncio
async def test_deferred_commit_flushes_id(db, session_factory) -> None:
    store = RoleStore(db)
    first = await store.save(Role.create("first", "First"), commit_now=False)
    second = await store.save(Role.create("second", "Second"), commit_now=False)

    assert first.id is not None and second.id is not None
    await store.commit()

    async with session_factory() as other:
        assert await RoleStore(other).find_by_name("second") is not None


@pytest.mark.asyncio
async def test_save_rejects_hierarchy_cycle(db, make_role) -> None:
    await make_role("b", hierarchical_roles=[])
    await make_role("a", hierarchical_roles=["b"])
    b = await RoleStore(db).find_by_name("b")

    b.hierarchical_roles = ["a"]
    with pytest.raises(CycleError) as exc_info:
        await RoleStore(db).save(b)

    assert exc_info.value.path == ("b", "a", "b")


@pytest.mark.asyncio
async def test_save_rejects_self_inheritance(db) -> None:
    role = Role.create("loner", "Loner")
    role.hierarchical_roles = ["loner"]

    with pytest.raises(CycleError):
        await RoleStore(db).save(role)


@pytest.mark.asyncio
async def test_remove_cascades_to_rules(db, make_role, make_rule) -> None:
    role = await make_role("moderator")
    await make_rule(role, "App\\Entity\\Content", "status = 'pending'")
    await make_rule(role, "App\\Entity\\Comment", "1 = 1")

    await RoleStore(db).remove(role)

    assert await RulePersistence(db).find_by_role(role) == []
    assert await _count(db, DataPermissionRule) == 0
    assert await RoleStore(db).find_by_name("moderator") is None


@pytest.mark.asyncio
async def test_remove_drops_principal_assignments(db, make_role) -> None:
    role = await make_role("support")
    store = RoleStore(db)
    await store.assign_principal(role, "user-1")

    await store.remove(role)

    assert await _count(db, principal_roles) == 0
    assert await store.role_names_for_principal("user-1") == []


@pytest.mark.asyncio
async def test_principal_assignments(db, make_role) -> None:
    support = await make_role("support")
    billing = await make_role("billing")
    store = RoleStore(db, actor="admin")

    assert await store.assign_principal(support, "user-1") is True
    assert await store.assign_principal(support, "user-1") is False
    assert await store.assign_principal(billing, "user-1") is True
    assert await store.assign_principal(support, "user-2") is True

    assert await store.count_principals(support) == 2
    assert await store.role_names_for_principal("user-1") == ["support", "billing"]

    assert await store.unassign_principal(support, "user-1") is True
    assert await store.unassign_principal(support, "user-1") is False
    assert await store.role_names_for_principal("user-1") == ["billing"]


@pytest.mark.asyncio
async def test_roles_inherit_from_existing_base_role(db, make_role) -> None:
    base = await make_role(config.BASE_ROLE_NAME, "Operator", permissions=["profile:read"])
    editor = await make_role("editor", permissions=["content:write"])

    assert base.hierarchical_roles == []
    assert editor.hierarchical_roles == [config.BASE_ROLE_NAME]

    store = RoleStore(db)
    by_name = {role.name: role for role in await store.list_valid()}
    assert editor.effective_permissions(by_name.get).to_list() == ["content:write", "profile:read"]


@pytest.mark.asyncio
async def test_find_or_create_base_role_keeps_hierarchy_acyclic(db, make_role) -> None:
    store = RoleStore(db)

    base = await store.find_or_create(config.BASE_ROLE_NAME)
    editor = await make_role("editor")

    assert base.hierarchical_roles == []
    assert editor.hierarchical_roles == [config.BASE_ROLE_NAME]


@pytest.mark.asyncio
async def test_failed_rule_create_does_not_break_role_save(db, make_role) -> None:
    role = await make_role("editor")

    with pytest.raises(ValidationError):
        DataPermissionRule.create(role, "", "1 = 1")

    role.title = "Chief editor"
    await RoleStore(db).save(role)

    assert await _count(db, DataPermissionRule) == 0


@pytest.mark.asyncio
async def test_find_or_create_leaves_staged_writes_uncommitted(db, make_role, session_factory) -> None:
    role = await make_role("moderator")
    await RulePersistence(db).save(
        DataPermissionRule.create(role, "App\\Entity\\Content", "1 = 1"),
        commit_now=False,
    )

    other = await RoleStore(db).find_or_create("other", commit_now=False)
    assert other.id is not None

    await db.rollback()

    async with session_factory() as fresh:
        assert await _count(fresh, DataPermissionRule) == 0
        assert await RoleStore(fresh).find_by_name("other") is None


@pytest.mark.asyncio
async def test_name_conflict_keeps_staged_writes(db, make_role, session_factory, monkeypatch) -> None:
    role = await make_role("moderator")
    store = RoleStore(db)
    await RulePersistence(db).save(
        DataPermissionRule.create(role, "App\\Entity\\Content", "1 = 1"),
        commit_now=False,
    )

    lookup = RoleStore.find_by_name
    calls = []

    async def _miss_first(self, name):
        calls.append(name)
        if len(calls) == 1:
            return None
        return await lookup(self, name)

    monkeypatch.setattr(RoleStore, "find_by_name", _miss_first)

    with pytest.raises(DuplicateRoleError):
        await store.save(Role.create("moderator", "Another"), commit_now=False)

    await store.commit()

    async with session_factory() as fresh:
        assert await _count(fresh, DataPermissionRule) == 1
        assert await _count(fresh, Role) == 1
