"""
Seed Permissions and Roles Script
This script populates the system permissions and roles (no owner) from the
permission matrix and syncs each role's permission assignments.
Run with: python -m app.scripts.seed_permissions_roles
"""

import asyncio
import sys
from app.config.permissions_config import PERMISSION_MATRIX
from app.database.supabase_client import get_supabase
from app.modules.roles.service import RolePermissionAssignService
from supabase import AsyncClient
from typing import Dict, Tuple
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def _find_system_row(supabase: AsyncClient, table: str, name: str, scope: str):
    existing = await supabase.table(table)\
        .select("*")\
        .eq("name", name)\
        .eq("scope", scope)\
        .execute()
    for row in existing.data or []:
        if row.get("owner_id") is None:
            return row
    return None


async def seed_permissions(supabase: AsyncClient) -> Dict[Tuple[str, str], str]:
    """Seed system permissions from config; returns (name, scope) -> id"""
    logger.info("Seeding permissions...")

    ids: Dict[Tuple[str, str], str] = {}
    created_count = 0
    updated_count = 0

    for perm in PERMISSION_MATRIX["permissions"]:
        try:
            existing = await _find_system_row(supabase, "permissions", perm["name"], perm["scope"])

            if existing:
                await supabase.table("permissions")\
                    .update({"description": perm["description"]})\
                    .eq("id", existing["id"])\
                    .execute()
                ids[(perm["name"], perm["scope"])] = existing["id"]
                updated_count += 1
                logger.debug(f"Updated permission: {perm['name']} ({perm['scope']})")
            else:
                result = await supabase.table("permissions").insert({
                    "name": perm["name"],
                    "scope": perm["scope"],
                    "description": perm["description"],
                    "owner_id": None
                }).execute()
                ids[(perm["name"], perm["scope"])] = result.data[0]["id"]
                created_count += 1
                logger.debug(f"Created permission: {perm['name']} ({perm['scope']})")
        except Exception as e:
            logger.error(f"Error processing permission {perm['name']}: {e}")

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated")
    return ids


async def seed_roles(supabase: AsyncClient, permission_ids: Dict[Tuple[str, str], str]) -> int:
    """Seed system roles from config and sync their permissions"""
    logger.info("Seeding roles...")

    assign_service = RolePermissionAssignService(supabase)
    created_count = 0
    updated_count = 0

    for role in PERMISSION_MATRIX["roles"]:
        try:
            existing = await _find_system_row(supabase, "roles", role["name"], role["scope"])

            if existing:
                await supabase.table("roles")\
                    .update({"description": role["description"], "is_system": True})\
                    .eq("id", existing["id"])\
                    .execute()
                role_id = existing["id"]
                updated_count += 1
                logger.debug(f"Updated role: {role['name']} ({role['scope']})")
            else:
                result = await supabase.table("roles").insert({
                    "name": role["name"],
                    "scope": role["scope"],
                    "description": role["description"],
                    "is_system": True,
                    "owner_id": None
                }).execute()
                role_id = result.data[0]["id"]
                created_count += 1
                logger.debug(f"Created role: {role['name']} ({role['scope']})")

            wanted = [
                permission_ids[(name, role["scope"])]
                for name in role["permissions"]
                if (name, role["scope"]) in permission_ids
            ]
            sync = await assign_service.assign_permissions_to_role(role_id, wanted)
            logger.debug(f"Role {role['name']}: {sync.message}")
        except Exception as e:
            logger.error(f"Error processing role {role['name']}: {e}")

    logger.info(f"Roles seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


async def seed(supabase: AsyncClient):
    logger.info("Starting permissions and roles seeding...")

    # Roles reference permissions by id, so permissions go first
    permission_ids = await seed_permissions(supabase)
    role_count = await seed_roles(supabase, permission_ids)

    logger.info("Seeding completed successfully!")
    logger.info(f"Total: {len(permission_ids)} permissions, {role_count} roles processed")


async def main():
    """Main function to seed permissions and roles"""
    try:
        supabase = await get_supabase()
        await seed(supabase)
    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
