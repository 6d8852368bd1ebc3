"""
Source access gate for schema operations.

Role lookups and grants live in the store; this module only decides.
"""

from __future__ import annotations

import logging
from typing import Any

from shopdata.core.errors import SchemaAccessDeniedError

logger = logging.getLogger(__name__)

ELEVATED_ROLES = ("admin", "schema_admin")


async def has_elevated_role(store: Any, user_id: str) -> bool:
    return await store.user_has_any_role(user_id, ELEVATED_ROLES)


async def check_source_access(store: Any, user_id: str, source: dict[str, Any]) -> bool:
    """
    Allow admins/schema admins, the source owner and explicitly granted users.

    Returns:
        bool: whether the caller holds an elevated role (full, unredacted access)

    Raises:
        SchemaAccessDeniedError: none of the above applies
    """
    source_id = source["id"]
    if await has_elevated_role(store, user_id):
        return True
    if source.get("user_id") == user_id:
        return False
    if await store.has_source_grant(source_id, user_id):
        return False
    logger.warning("User %s denied schema access to source %s", user_id, source_id)
    raise SchemaAccessDeniedError(source_id)
