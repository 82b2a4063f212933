from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict

UserRole = Literal["admin", "manager", "responder", "viewer"]
UserStatus = Literal["active", "inactive", "pending"]


class User(BaseModel):
    """Signed-in identity as seen by the rest of the system."""

    model_config = ConfigDict(frozen=True, from_attributes=True, coerce_numbers_to_str=True)

    id: str
    email: str
    full_name: str
    role: UserRole = "viewer"
    team: Optional[str] = None
    status: UserStatus = "active"

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


class Credentials(BaseModel):
    email: str
    password: str


UserListener = Callable[[Optional[User]], None]


class IdentityProvider(ABC):
    """
    Hosted-auth style adapter: sign in, sign out and a reactive current user.
    """

    def __init__(self) -> None:
        self._user: Optional[User] = None
        self._listeners: list[UserListener] = []

    def current_user(self) -> Optional[User]:
        return self._user

    def on_user_changed(self, listener: UserListener) -> Callable[[], None]:
        """Register a listener; it is called right away with the current user."""
        self._listeners.append(listener)
        listener(self._user)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def _set_user(self, user: Optional[User]) -> None:
        if user == self._user:
            return
        self._user = user
        for listener in list(self._listeners):
            listener(user)

    @abstractmethod
    async def sign_in(self, credentials: Credentials) -> User:
        """Raise AuthorizationError on bad credentials."""

    @abstractmethod
    async def sign_out(self) -> None:
        ...
