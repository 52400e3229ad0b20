"""
Seed script to populate default roles and data permission rules.

Run this script after database initialization to create:
- The admin, moderator and analyst roles
- Sample data permission rules for each of them

Usage:
    python -m scripts.seed_roles
"""
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.database.engine import get_db, init_db
from bizrole.features.data_permissions.models import DataPermissionRule
from bizrole.features.data_permissions.persistence import RulePersistence
from bizrole.features.roles.store import RoleStore
from bizrole.utils import get_logger


log = get_logger(__name__)

SEED_ACTOR = "seed"

DEFAULT_ROLES = {
    "admin": {
        "title": "系统管理员",
        "is_admin": True,
        "permissions": [],
    },
    "moderator": {
        "title": "内容审核员",
        "is_admin": False,
        "permissions": ["content:read", "content:review", "content:publish"],
    },
    "analyst": {
        "title": "数据分析师",
        "is_admin": False,
        "permissions": ["reports:read", "reports:export"],
    },
}

# (role name, entity class, statement, remark)
DEFAULT_RULES = [
    ("admin", "App\\Entity\\User", "1 = 1", "管理员可以访问所有用户数据"),
    ("admin", "Tourze\\BizRoleBundle\\Entity\\BizRole", "1 = 1", "管理员可以管理所有角色"),
    ("moderator", "App\\Entity\\Content", 'status = "pending" OR status = "published"', "审核员只能查看待审核和已发布的内容"),
    ("analyst", "App\\Entity\\Report", 'department_id IN (1, 2, 3) AND created_at >= "2024-01-01"', "分析师可以查看特定部门的最新报告"),
]


async def seed_roles(db: AsyncSession) -> dict:
    """
    Create the default roles, leaving existing ones untouched.

    Returns:
        Dictionary of role name -> Role object
    """
    log.info("Creating default roles...")
    store = RoleStore(db, actor=SEED_ACTOR)
    roles = {}
    
    for role_name, role_config in DEFAULT_ROLES.items():
        role = await store.find_or_create(role_name, role_config["title"])
        if role.permissions or role.is_admin:
            log.debug(f"Role '{role_name}' already configured, skipping")
        else:
            role.is_admin = role_config["is_admin"]
            role.permissions = role_config["permissions"]
            await store.save(role, commit_now=False)
            log.info(f"Configured role '{role_name}' with {len(role_config['permissions'])} permissions")
        roles[role_name] = role
    
    await store.commit()
    return roles


async def seed_rules(db: AsyncSession, roles: dict):
    """
    Create the sample data permission rules, one per role and entity class.
    """
    log.info("Creating default data permission rules...")
    rules = RulePersistence(db, actor=SEED_ACTOR)
    
    for role_name, entity_class, statement, remark in DEFAULT_RULES:
        role = roles[role_name]
        if await rules.find_for_entity(role, entity_class):
            log.debug(f"Rule for '{role_name}' on '{entity_class}' already exists, skipping")
            continue
        
        rule = DataPermissionRule.create(role, entity_class, statement)
        rule.remark = remark
        rule.valid = True
        await rules.save(rule, commit_now=False)
        log.info(f"Created rule for '{role_name}' on '{entity_class}'")
    
    await rules.commit()


async def main():
    """Main function to seed roles and rules."""
    log.info("Starting role seeding...")
    
    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()
    
    # Get database session
    async for db in get_db():
        try:
            roles = await seed_roles(db)
            await seed_rules(db, roles)
            
            log.info("Role seeding completed successfully!")
            for role_name, role_config in DEFAULT_ROLES.items():
                log.info(f"  - {role_name}: {role_config['title']}")
        
        except Exception as e:
            log.error(f"Error seeding roles: {e}", exc_info=True)
            await db.rollback()
            raise
        
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
