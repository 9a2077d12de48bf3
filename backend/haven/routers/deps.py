"""
Shared Route Dependencies
=========================
Bearer-token verification and the per-request store container.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, status

from haven.config import get_settings
from haven.sync.container import AppContainer, build_container
from haven.sync.persistence import MemoryStorage

logger = logging.getLogger(__name__)


def get_authenticated_user_id(authorization: str, db: Any) -> str:
    """Verify the Supabase JWT and return the auth user id.

    Raises HTTPException 401 if the token is missing, empty, or rejected.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing or invalid authorization header", "code": "auth_required"},
        )

    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Empty bearer token", "code": "auth_required"},
        )

    try:
        auth_response = db.auth.get_user(token)
    except Exception as exc:
        logger.warning("Auth token verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token", "code": "auth_invalid"},
        ) from exc

    if not auth_response or not auth_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "User not found for token", "code": "auth_invalid"},
        )

    return auth_response.user.id


def request_container(db: Any) -> AppContainer:
    """Stores for one request. Server-side they never persist to disk."""
    return build_container(get_settings(), db, storage=MemoryStorage())
