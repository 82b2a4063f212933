"""FastAPI dependencies: the shared gateway/identity objects, the current user and role guards."""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from livesync.errors import AuthorizationError
from livesync.identity import User
from livesync.synchronizer import LiveStateSynchronizer

from .changes import change_hub
from .db import SessionLocal
from .gateway import SqlGateway
from .identity import LocalIdentityProvider

gateway = SqlGateway(SessionLocal, change_hub)
identity = LocalIdentityProvider(SessionLocal)

_bearer = HTTPBearer(auto_error=False)


def get_gateway() -> SqlGateway:
    return gateway


def get_identity() -> LocalIdentityProvider:
    return identity


def get_synchronizer(request: Request) -> LiveStateSynchronizer:
    synchronizer = getattr(request.app.state, "synchronizer", None)
    if synchronizer is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Live state is not running")
    return synchronizer


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_user(token: str = Depends(get_token)) -> User:
    """Return the authenticated user or raise 401."""
    try:
        return identity.authenticate(token)
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.has_role("admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user


def require_editor(current_user: User = Depends(get_current_user)) -> User:
    """Viewers may read everything but change nothing."""
    if current_user.has_role("viewer"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Viewers cannot modify data")
    return current_user


def user_for_ws_token(token: Optional[str]) -> Optional[User]:
    """Return the user for a WebSocket ?token= value, or None when it is not valid."""
    if not token:
        return None
    try:
        return identity.authenticate(token)
    except AuthorizationError:
        return None


def require_uuid(value: str, what: str = "id") -> str:
    """Reject ids that are not UUIDs with a 400 before they reach the database."""
    try:
        return str(uuid.UUID(value))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {what} format") from e
