"""
Session-scoped access state for the UI.

AuthController follows the session provider's events and decides whether
record queries may run. Leaving a user (sign-out, expiry, switching account)
fires the clear callbacks so cached per-user data cannot leak into the next
user's view.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from errors import AuthorizationError
from services.common import extract_recovery_code, is_recovery_url
from services.session_provider import AuthResult, AuthSession, SessionEvent, SessionProvider

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    PASSWORD_RECOVERY = "password_recovery"


class AuthController:
    """Tracks the auth state and gates record queries on it."""

    def __init__(self, provider: SessionProvider):
        self.provider = provider
        self.state = AuthState.UNAUTHENTICATED
        self.session: Optional[AuthSession] = None
        self._clear_callbacks: List[Callable[[Optional[str]], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    @property
    def email(self) -> Optional[str]:
        return self.session.identity.email if self.session else None

    @property
    def can_query(self) -> bool:
        """Record queries run only for a fully authenticated user."""
        return self.state is AuthState.AUTHENTICATED and self.session is not None

    def on_user_cleared(self, callback: Callable[[Optional[str]], None]):
        """Register a callback run with the previous user id when that user's data must go."""
        self._clear_callbacks.append(callback)

    def start(self, url: Optional[str] = None) -> AuthState:
        """
        Load the initial session and subscribe to provider events.
        A recovery link in the URL moves straight to password recovery.
        """
        self.state = AuthState.AUTHENTICATING
        if self._unsubscribe is None:
            self._unsubscribe = self.provider.on_session_change(self.handle_event)
        self.handle_event(SessionEvent.INITIAL_SESSION, self.provider.get_current_session())
        if url:
            self.check_recovery_url(url)
        return self.state

    def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def check_recovery_url(self, url: str) -> Optional[AuthResult]:
        """
        Handle a followed recovery link.

        A code in the link is always exchanged for a session (which emits
        PASSWORD_RECOVERY), even over an existing session: the code names
        the account being recovered. A bare type=recovery marker with no
        code switches the current session to recovery.
        """
        code = extract_recovery_code(url)
        if code:
            result = self.provider.exchange_code_for_session(code)
            if not result.ok:
                logger.warning(f"Recovery link rejected: {result.error}")
            return result
        if is_recovery_url(url) and self.session is not None:
            self.state = AuthState.PASSWORD_RECOVERY
            return AuthResult(True)
        return None

    def handle_event(self, event: SessionEvent, session: Optional[AuthSession]):
        previous_user = self.user_id
        next_user = session.user_id if session else None

        if previous_user is not None and previous_user != next_user:
            self._clear(previous_user)

        self.session = session
        if session is None:
            self.state = AuthState.UNAUTHENTICATED
        elif event is SessionEvent.PASSWORD_RECOVERY or session.is_recovery:
            self.state = AuthState.PASSWORD_RECOVERY
        elif event is SessionEvent.USER_UPDATED:
            self.state = AuthState.AUTHENTICATED
        elif self.state is AuthState.PASSWORD_RECOVERY and previous_user == next_user:
            # token refresh during recovery keeps the user on the reset screen
            pass
        else:
            self.state = AuthState.AUTHENTICATED
        logger.debug(f"Auth event {event.value} -> {self.state.value}")

    def _clear(self, user_id: str):
        logger.info(f"Clearing cached data for user {user_id}")
        for callback in list(self._clear_callbacks):
            callback(user_id)

    def require_user(self) -> str:
        """The authenticated user id, or AuthorizationError when queries are gated."""
        # re-check so an expired session is noticed before the query goes out
        if self.session is not None and self.provider.get_current_session() is None:
            self.handle_event(SessionEvent.SIGNED_OUT, None)
        if not self.can_query:
            raise AuthorizationError(f"Not signed in (state: {self.state.value})")
        return self.user_id
