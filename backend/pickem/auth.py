"""Caller identity for API routes.

Sign-in happens with the external identity provider; by the time a request
reaches this service it carries a bearer token that maps to a user id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException

from .core.config import Settings, get_settings


@dataclass(slots=True, frozen=True)
class CurrentUser:
    user_id: str


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """Resolve the caller from the Authorization header or reject with 401."""

    token = _bearer_token(authorization)
    user_id = settings.api_tokens.get(token) if token else None
    if not user_id:
        raise HTTPException(status_code=401, detail={"error": "Authentication required"})
    return CurrentUser(user_id=user_id)


def require_admin(
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if settings.admin_user_ids and user.user_id not in settings.admin_user_ids:
        raise HTTPException(
            status_code=403,
            detail={"error": "Forbidden", "reason": "Administrator access required"},
        )
    return user
