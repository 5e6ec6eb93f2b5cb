"""Supabase Auth (GoTrue) client: sign in/up/out, session refresh and change events."""

import inspect
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

import httpx

from config import SUPABASE_URL, SUPABASE_ANON_KEY, HTTP_TIMEOUT
from logger import logger
from .. import config
from ..helpers import validate_email, validate_password
from ..reminders.store import LocalStore
from ..results import ok, fail, from_exception, INVALID_EMAIL, INVALID_PASSWORD
from .postgrest import StoreError

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

SessionCallback = Callable[[str, Optional["Session"]], Any]

# Raised by Session/User.from_dict on an empty or incomplete auth body
MALFORMED_BODY_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


class AuthError(StoreError):
    """Error returned by the auth endpoint."""

    @classmethod
    def from_response(cls, response: httpx.Response) -> "AuthError":
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return cls(message=response.text or "", status=response.status_code)

        code = body.get("error_code") or body.get("error") or body.get("code")
        return cls(
            message=body.get("msg") or body.get("error_description") or body.get("message") or "",
            code=str(code) if code is not None else None,
            status=response.status_code,
        )


@dataclass
class User:
    """Authenticated user as returned by the auth endpoint."""
    id: str
    email: Optional[str] = None
    user_metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=data["id"],
            email=data.get("email"),
            user_metadata=data.get("user_metadata") or {},
        )


@dataclass
class Session:
    """Access/refresh token pair plus the user it belongs to."""
    access_token: str
    refresh_token: str
    user: User
    expires_at: Optional[int] = None
    token_type: str = "bearer"

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            user=User.from_dict(data["user"]),
            expires_at=expires_at,
            token_type=data.get("token_type", "bearer"),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def is_expired(self, margin: int = config.SESSION_EXPIRY_MARGIN_SECONDS) -> bool:
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - margin


class AuthService:
    """Identity provider boundary.

    Holds the current session in memory, persists it to local storage and
    notifies subscribers on every change. Expired sessions are refreshed the
    next time the session is requested.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        storage: Optional[LocalStore] = None,
        timeout: Optional[float] = None,
    ):
        self.url = (url or SUPABASE_URL or "").rstrip("/")
        self.api_key = api_key or SUPABASE_ANON_KEY
        self.timeout = timeout or HTTP_TIMEOUT
        self.storage = storage
        self._session: Optional[Session] = None
        self._restored = False
        self._listeners: list[SessionCallback] = []

    def _get_auth_url(self) -> str:
        return f"{self.url}/auth/v1"

    def _get_headers(self, access_token: Optional[str] = None) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(
        self,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        access_token: Optional[str] = None,
    ) -> Any:
        if not self.url or not self.api_key:
            raise AuthError("Supabase credentials not configured", code="CONFIG")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self._get_auth_url()}/{path}",
                    headers=self._get_headers(access_token),
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            raise AuthError(str(e), code="NETWORK") from e

        if response.status_code >= 400:
            raise AuthError.from_response(response)
        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # SESSION STATE
    # =========================================================================

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def get_access_token(self) -> Optional[str]:
        """Token for store requests; None falls back to the anon key."""
        return self._session.access_token if self._session else None

    def on_session_changed(self, callback: SessionCallback) -> Callable[[], None]:
        """Subscribe to session changes. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _emit(self, event: str, session: Optional[Session]) -> None:
        logger.info(f"Auth state change: {event}")
        for callback in list(self._listeners):
            try:
                result = callback(event, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session listener failed on {event}: {e}")

    async def _set_session(self, session: Optional[Session], event: str) -> None:
        self._session = session
        if self.storage is not None:
            if session is None:
                self.storage.remove_item(config.SESSION_STORAGE_KEY)
            else:
                self.storage.set_json(config.SESSION_STORAGE_KEY, session.to_dict())
        await self._emit(event, session)

    def _restore(self) -> None:
        """Load a persisted session from local storage (once)."""
        self._restored = True
        if self.storage is None:
            return
        data = self.storage.get_json(config.SESSION_STORAGE_KEY)
        if not data:
            return
        try:
            self._session = Session.from_dict(data)
            logger.info(f"Restored session for user {self._session.user.id}")
        except (KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable stored session: {e}")
            self.storage.remove_item(config.SESSION_STORAGE_KEY)

    async def get_session(self) -> dict:
        """Current session (restored and refreshed as needed), or None."""
        if self._session is None and not self._restored:
            self._restore()

        if self._session is not None and self._session.is_expired():
            logger.info("Session expired, refreshing...")
            return await self.refresh_session()

        return ok(self._session)

    async def refresh_session(self) -> dict:
        """Exchange the refresh token for a new session."""
        if self._session is None:
            return ok(None)

        try:
            data = await self._post(
                "token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self._session.refresh_token},
            )
            session = Session.from_dict(data)
        except AuthError as e:
            logger.error(f"Session refresh failed: {e.message}")
            if e.code != "NETWORK":
                # Refresh token rejected, the session is gone
                await self._set_session(None, SIGNED_OUT)
            return from_exception(e, "Sessão expirada")
        except MALFORMED_BODY_ERRORS as e:
            logger.error(f"Session refresh returned an unusable body: {e!r}")
            return from_exception(e, "Sessão expirada")

        await self._set_session(session, TOKEN_REFRESHED)
        logger.info("Session refreshed successfully")
        return ok(session)

    # =========================================================================
    # SIGN IN / UP / OUT
    # =========================================================================

    async def sign_in(self, email: str, password: str) -> dict:
        email = (email or "").strip()
        if not validate_email(email):
            return fail(INVALID_EMAIL)
        if not password:
            return fail(INVALID_PASSWORD)

        try:
            data = await self._post(
                "token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
            session = Session.from_dict(data)
        except AuthError as e:
            logger.error(f"Sign in error: {e.message}")
            return from_exception(e, "Não foi possível iniciar sessão.")
        except MALFORMED_BODY_ERRORS as e:
            logger.error(f"Sign in returned an unusable body: {e!r}")
            return from_exception(e, "Não foi possível iniciar sessão.")

        await self._set_session(session, SIGNED_IN)
        logger.info(f"User signed in: {session.user.id}")
        return ok({"session": session, "user": session.user})

    async def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> dict:
        """Create an account. A session is only started if the server returns one
        (i.e. e-mail confirmation is disabled)."""
        email = (email or "").strip()
        if not validate_email(email):
            return fail(INVALID_EMAIL)
        if not validate_password(password):
            return fail(INVALID_PASSWORD)

        try:
            data = await self._post(
                "signup",
                json={"email": email, "password": password, "data": metadata or {}},
            )
            if data and data.get("access_token"):
                session = Session.from_dict(data)
            else:
                session = None
                user = User.from_dict((data or {}).get("user") or data)
        except AuthError as e:
            logger.error(f"Sign up error: {e.message}")
            return from_exception(e, "Não foi possível criar a conta.")
        except MALFORMED_BODY_ERRORS as e:
            logger.error(f"Sign up returned an unusable body: {e!r}")
            return from_exception(e, "Não foi possível criar a conta.")

        if session is not None:
            await self._set_session(session, SIGNED_IN)
            return ok({"session": session, "user": session.user})

        logger.info(f"User signed up, awaiting confirmation: {user.id}")
        return ok({"session": None, "user": user})

    async def sign_out(self) -> dict:
        """Sign out. The local session is cleared even if the server call fails."""
        session = self._session
        if session is not None:
            try:
                await self._post("logout", access_token=session.access_token)
            except AuthError as e:
                logger.warning(f"Remote sign out failed, clearing local session: {e.message}")

        await self._set_session(None, SIGNED_OUT)
        return ok(None)
