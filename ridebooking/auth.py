"""Bearer-token guard for the operator routes (conversation reset, stats).

The booking and webhook routes stay public. Operator routes are gated on
``ADMIN_API_KEY``; when no key is configured they are open only in DEBUG
and refused otherwise.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ridebooking.config import settings

log = logging.getLogger("ridebooking.auth")

operator_bearer = HTTPBearer(auto_error=False, description="Operator API key")


def _token_matches(presented: str | None, expected: str) -> bool:
    if not presented:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())


async def require_admin_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(operator_bearer),
) -> None:
    """Allow the request through only for a valid operator token."""
    expected = settings.admin_api_key
    if expected:
        presented = credentials.credentials if credentials is not None else None
        if _token_matches(presented, expected):
            return
        log.warning(
            "Operator route refused: %s token",
            "missing" if presented is None else "invalid",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator token missing or not recognised.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if settings.debug:
        log.debug("Operator route open: no ADMIN_API_KEY and DEBUG is on")
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Operator routes are locked until ADMIN_API_KEY is set.",
    )
