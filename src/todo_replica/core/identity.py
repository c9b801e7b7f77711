"""Authenticated identity and the auth provider contract."""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from todo_replica.utils.logging import get_logger

logger = get_logger(__name__)


class Identity(BaseModel):
    """The authenticated user context scoping all queries and mutations."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    display_name: str | None = None


IdentityListener = Callable[[Identity | None], Awaitable[None]]


@runtime_checkable
class AuthProvider(Protocol):
    """Source of the current identity and of identity change events."""

    def current_identity(self) -> Identity | None: ...

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        ...


class LocalAuthProvider:
    """Auth provider whose identity is set directly by the caller.

    Listeners are awaited in registration order on every identity change.
    """

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._listeners: list[IdentityListener] = []

    def current_identity(self) -> Identity | None:
        return self._identity

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, user_id: str, display_name: str | None = None) -> Identity:
        """Bind an identity and notify listeners if it changed."""
        identity = Identity(user_id=user_id, display_name=display_name)
        if self._identity is not None and self._identity.user_id == identity.user_id:
            self._identity = identity
            return identity
        self._identity = identity
        logger.info("identity_signed_in", user_id=identity.user_id)
        await self._notify()
        return identity

    async def sign_out(self) -> None:
        """Drop the identity and notify listeners."""
        previous = self._identity
        self._identity = None
        logger.info("identity_signed_out", user_id=previous.user_id if previous else None)
        await self._notify()

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener(self._identity)
