"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract and
validate the current user from the request.

The token is read from the Authorization header ("Bearer <jwt>") or,
failing that, from the `token` query parameter: the browser's
EventSource API cannot send custom headers, so SSE clients put the
token in the URL.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Header, Query

from atelier.auth.jwt import TokenError, verify_token


class CurrentUser:
    """The authenticated user making the request."""

    def __init__(
        self,
        user_id: str,
        role: str = "MANAGER",
        email: Optional[str] = None,
    ):
        self.user_id = user_id
        self.role = role
        self.email = email

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None, description="JWT for EventSource clients"),
) -> Optional[CurrentUser]:
    """Extract the current user (optional — returns None if no auth)."""
    if authorization and authorization.startswith("Bearer "):
        return _authenticate_jwt(authorization[7:])
    if token:
        return _authenticate_jwt(token)
    return None


async def get_current_user(
    user: Optional[CurrentUser] = Depends(get_current_user_optional),
) -> CurrentUser:
    """Extract the current user (required — 401 if no auth)."""
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(*roles: str):
    """Dependency factory: 403 unless the user holds one of `roles`."""

    async def dependency(
        user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if not user.has_role(*roles):
            raise HTTPException(
                status_code=403,
                detail=f"Requires role: {' or '.join(roles)}",
            )
        return user

    return dependency


def _authenticate_jwt(token: str) -> CurrentUser:
    try:
        payload = verify_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(
        user_id=payload["sub"],
        role=payload.get("role", ""),
        email=payload.get("email"),
    )
