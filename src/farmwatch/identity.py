"""
Local identity provider backed by the users table.

Passwords are bcrypt hashes; sessions are signed bearer tokens. Logging out
puts the token's jti on an in-memory deny list, so revocation lasts for the
lifetime of the process (tokens expire on their own afterwards).
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from livesync.errors import AuthorizationError, ConflictError, ValidationError
from livesync.identity import Credentials, IdentityProvider, User

from .models import User as UserRow
from .security import create_access_token, decode_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class LocalIdentityProvider(IdentityProvider):
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        super().__init__()
        self._session_factory = session_factory
        # jti -> exp (epoch seconds); an entry is useless once its token expires.
        self._revoked: dict[str, float] = {}
        self._lock = threading.Lock()
        self._token: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        role: Optional[str] = None,
        team: Optional[str] = None,
        status: str = "active",
    ) -> User:
        """
        Create a user. Without an explicit role the first account becomes an
        admin and every later one a viewer.
        """
        email = email.strip().lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        with self._session_factory() as db:
            if role is None:
                role = "admin" if db.query(func.count(UserRow.id)).scalar() == 0 else "viewer"
            row = UserRow(
                email=email,
                full_name=full_name,
                role=role,
                team=team,
                status=status,
                password_hash=hash_password(password),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ConflictError(f"A user with email {email!r} already exists") from e
            db.refresh(row)
            logger.info("Created %s account %s", row.role, row.email)
            return User.model_validate(row)

    def login(self, email: str, password: str) -> tuple[User, str]:
        """Check credentials and return the user with a fresh access token."""
        with self._session_factory() as db:
            row = db.query(UserRow).filter(UserRow.email == email.strip().lower()).first()
            if row is None or not verify_password(password, row.password_hash):
                raise AuthorizationError("Invalid email or password")
            user = User.model_validate(row)
        if user.status != "active":
            raise AuthorizationError(f"Account is {user.status}")
        return user, create_access_token(user.id)

    def authenticate(self, token: str) -> User:
        """Resolve a bearer token to its user; AuthorizationError if it is not usable."""
        payload = decode_token(token)
        with self._lock:
            if payload["jti"] in self._revoked:
                raise AuthorizationError("Token has been revoked")
        with self._session_factory() as db:
            row = db.get(UserRow, str(payload["sub"]))
            if row is None:
                raise AuthorizationError("User no longer exists")
            user = User.model_validate(row)
        if user.status != "active":
            raise AuthorizationError(f"Account is {user.status}")
        return user

    def logout(self, token: str) -> None:
        payload = decode_token(token)
        now = time.time()
        with self._lock:
            self._revoked = {jti: exp for jti, exp in self._revoked.items() if exp > now}
            self._revoked[payload["jti"]] = float(payload["exp"])
        logger.info("Revoked session for user %s", payload["sub"])

    async def sign_in(self, credentials: Credentials) -> User:
        user, token = await asyncio.to_thread(self.login, credentials.email, credentials.password)
        self._token = token
        self._set_user(user)
        return user

    async def sign_out(self) -> None:
        token, self._token = self._token, None
        if token is not None:
            try:
                self.logout(token)
            except AuthorizationError:
                logger.debug("Session token was already invalid at sign-out")
        self._set_user(None)
