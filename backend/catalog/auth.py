"""
App Catalog Backend — API Key Authorization
============================================

What:  FastAPI dependencies resolving the caller's authority from X-API-Key.
How:   Keys are configured in settings (USER_API_KEYS / ADMIN_API_KEYS).
       An ADMIN key satisfies every USER requirement.

    missing / unknown key      → AuthenticationError (401)
    known key, lower authority → AuthorizationError (403)
"""

from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import APIKeyHeader

from catalog.config import settings
from catalog.exceptions import AuthenticationError, AuthorizationError

USER = "USER"
ADMIN = "ADMIN"

_RANK = {USER: 1, ADMIN: 2}

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def current_authority(api_key: Optional[str] = Depends(api_key_header)) -> str:
    if not api_key:
        raise AuthenticationError()
    authority = settings.api_key_authorities.get(api_key)
    if authority is None:
        raise AuthenticationError(message="Invalid API key")
    return authority


def require_authority(required: str) -> Callable:
    """Dependency factory: `Depends(require_authority(ADMIN))`."""

    async def dependency(authority: str = Depends(current_authority)) -> str:
        if _RANK[authority] < _RANK[required]:
            raise AuthorizationError(required=required)
        return authority

    return dependency


require_user = require_authority(USER)
require_admin = require_authority(ADMIN)
