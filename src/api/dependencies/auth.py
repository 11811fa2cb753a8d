"""
API key authentication dependency.

Disabled unless API_AUTH_ENABLED=true; then every job, scheduler and
calculation endpoint needs an X-API-Key header equal to API_KEY.
/health stays open for liveness checks.
"""

import logging
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


logger = logging.getLogger(__name__)

API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false").lower() == "true"
API_KEY = os.getenv("API_KEY", "")

api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,
    description="API key (required when API_AUTH_ENABLED=true)",
)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> Optional[str]:
    """
    Check the X-API-Key header.

    Raises:
        HTTPException: 401 if auth is enabled and the key is missing or wrong

    Returns:
        The key when auth is enabled, None otherwise
    """
    if not API_AUTH_ENABLED:
        return None

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not API_KEY or not secrets.compare_digest(api_key, API_KEY):
        logger.warning("[Auth] Rejected request with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key
