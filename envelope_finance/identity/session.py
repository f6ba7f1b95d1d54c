"""
Identity and Session Lifecycle

A Session is acquired at sign-in and released at sign-out. It is passed
explicitly into every persistence call; there is no ambient "current user".

Two ways to sign in:
1. Anonymous - reuses IDENTITY_ANONYMOUS_ACCOUNT_ID when configured,
   otherwise mints a fresh account id.
2. Token - the account id is derived from a hash of the token, so the
   same token always maps to the same ledger.

Listeners registered with on_change() hear about every transition. This is
how the dashboard knows when to subscribe to data and when to stop.
"""

import hashlib
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, Field

from envelope_finance.config import IdentitySettings, get_settings


logger = structlog.get_logger(__name__)

SessionListener = Callable[[Optional["Session"]], None]


class SignInMethod(str, Enum):
    """How the session was obtained."""
    ANONYMOUS = "anonymous"
    TOKEN = "token"


class Session(BaseModel):
    """An authenticated session scoping all reads and writes to one account."""

    session_id: UUID = Field(default_factory=uuid4)
    account_id: str = Field(..., min_length=1)
    method: SignInMethod
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class IdentityError(Exception):
    """Sign-in was refused."""
    pass


class NotSignedIn(IdentityError):
    """An operation needed an active session and none was available."""
    pass


def ensure_active(session: Optional[Session]) -> Session:
    """Return the session if it is still active, else raise NotSignedIn."""
    if session is None:
        raise NotSignedIn("Sign in before reading or writing data")
    if not session.is_active:
        raise NotSignedIn(f"Session {session.session_id} has already ended")
    return session


def account_id_for_token(token: str) -> str:
    """Stable, non-reversible account id for a sign-in token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:28]


class SessionManager:
    """Owns the current session and notifies listeners of changes."""

    def __init__(self, settings: Optional[IdentitySettings] = None):
        self._settings = settings or get_settings().identity
        self._lock = threading.Lock()
        self._current: Optional[Session] = None
        self._listeners: list[SessionListener] = []

    @property
    def current(self) -> Optional[Session]:
        with self._lock:
            return self._current

    def require(self) -> Session:
        """The active session, or NotSignedIn."""
        return ensure_active(self.current)

    def sign_in_anonymously(self) -> Session:
        account_id = self._settings.anonymous_account_id or uuid4().hex
        return self._start(Session(account_id=account_id, method=SignInMethod.ANONYMOUS))

    def sign_in_with_token(self, token: str) -> Session:
        token = (token or "").strip()
        if not token:
            raise IdentityError("Sign-in token is empty")
        session = Session(account_id=account_id_for_token(token), method=SignInMethod.TOKEN)
        return self._start(session)

    def sign_out(self) -> None:
        with self._lock:
            session = self._current
            self._current = None
            if session is not None:
                session.ended_at = datetime.now(timezone.utc)
        if session is not None:
            logger.info("session_ended", account_id=session.account_id)
            self._notify(None)

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener. It is called immediately with the current
        session (possibly None), then on every sign-in and sign-out.

        Returns a function that unregisters the listener.
        """
        with self._lock:
            self._listeners.append(listener)
            current = self._current
        listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _start(self, session: Session) -> Session:
        with self._lock:
            previous = self._current
            if previous is not None:
                previous.ended_at = datetime.now(timezone.utc)
            self._current = session
        logger.info(
            "session_started",
            account_id=session.account_id,
            method=session.method.value,
        )
        self._notify(session)
        return session

    def _notify(self, session: Optional[Session]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(session)
