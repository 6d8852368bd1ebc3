"""
Request identity.

Authentication happens upstream; the authenticated user id arrives in the
X-User-Id header.
"""

from typing import Optional

from fastapi import Header

from shopdata.api.error_handling import http_exception
from shopdata.core.errors import AuthenticationRequiredError


async def optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


async def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    user_id = await optional_user_id(x_user_id)
    if user_id is None:
        raise http_exception(
            "authenticate", AuthenticationRequiredError("Missing X-User-Id header")
        )
    return user_id
