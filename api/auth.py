"""
Bearer token authentication for the FastAPI API.
"""

from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.config import config
from catalog.security import TokenService

logger = structlog.get_logger(__name__)

# Missing credentials are reported by TokenService, not by FastAPI
security = HTTPBearer(auto_error=False)

# Built once from configuration; the signing secret never changes at runtime
token_service = TokenService(
    secret_key=config.secret_key,
    algorithm=config.algorithm,
    expire_minutes=config.access_token_expire_minutes,
)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Resolve the authenticated user from the Authorization header.

    Raises:
        MissingTokenError, InvalidTokenError, ExpiredTokenError
    """
    token = credentials.credentials if credentials else None
    return token_service.verify(token)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Like ``get_current_user_id`` but anonymous requests resolve to None.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None
    return token_service.verify(credentials.credentials)
