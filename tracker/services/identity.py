"""Current identity cell.

Holds the signed-in user's id for the whole process. Only the identity
provider's session-changed callback writes it; services receive the cell by
injection and read ``user_id`` before every store call.
"""

from typing import Any, Callable, Optional

from logger import logger
from .auth_service import AuthService, Session, User

IdentityListener = Callable[[Optional[str], Optional[str]], Any]


class CurrentIdentity:
    """Reactive holder of the current user id."""

    def __init__(self):
        self._user: Optional[User] = None
        self._listeners: list[IdentityListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.error: Optional[dict] = None

    @property
    def user_id(self) -> Optional[str]:
        return self._user.id if self._user else None

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    async def bind(self, auth: AuthService) -> None:
        """Resolve the initial session and follow every later change.

        A failing provider leaves the identity logged out with ``error`` set;
        it never raises.
        """
        try:
            result = await auth.get_session()
        except Exception as e:
            logger.error(f"Error getting initial session: {e}")
            result = {"data": None, "error": {"message": str(e)}}

        self.error = result.get("error")
        session = result.get("data")
        self._apply(session)
        if session is None:
            logger.info("No initial session found")

        if self._unsubscribe is None:
            self._unsubscribe = auth.on_session_changed(self._on_session_changed)

    def _on_session_changed(self, event: str, session: Optional[Session]) -> None:
        self._apply(session)

    def _apply(self, session: Optional[Session]) -> None:
        previous = self.user_id
        self._user = session.user if session is not None else None
        current = self.user_id
        if previous == current:
            return

        logger.info(f"Identity changed: {previous or 'none'} -> {current or 'none'}")
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}")

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener(previous_id, current_id)``. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
