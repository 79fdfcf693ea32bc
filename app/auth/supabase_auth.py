"""Caller identity for submissions.

The pipeline does not authenticate anyone itself. With AUTH_ENABLED it asks
Supabase to validate the bearer token; otherwise it trusts an upstream gateway
that forwards the caller's id in ``X-User-Id``.
"""

from typing import Optional

from fastapi import Header, HTTPException
from app.config import settings
from app.db.supabase_client import get_supabase


async def resolve_caller(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> Optional[str]:
    """Return the authenticated user id (or None for anonymous callers)."""
    if not settings.auth_enabled:
        return x_user_id

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    token = authorization.replace("Bearer ", "", 1)
    try:
        user_response = get_supabase("anon").auth.get_user(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if user_response is None or user_response.user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_response.user.id
