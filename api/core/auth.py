"""Session-based authentication dependencies.

The login flow lives outside this service; it stores the authenticated
user's id under ``request.session["user_id"]`` (Starlette SessionMiddleware).
Routes only ever read it.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.logger import bind_contextvars, mask_user_id


def get_user_id_from_request(request: Request) -> str | None:
    """Get authenticated user ID from the session, or None."""
    session = request.scope.get("session")
    if not session:
        return None
    user_id = session.get("user_id")
    return str(user_id) if user_id else None


def require_auth(request: Request) -> str:
    """Raises 401 if not authenticated. Sets request.state.user_id."""
    user_id = get_user_id_from_request(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    request.state.user_id = user_id
    bind_contextvars(user_id=mask_user_id(user_id))
    return user_id


UserId = Annotated[str, Depends(require_auth)]
