"""
Session provider: sign-in, sign-up, password recovery and session events.

SessionProvider is the contract the rest of the app talks to.
LocalSessionProvider implements it on top of the UserAccount table, with
passlib password hashing and one-time recovery tokens mailed by EmailService.
"""

import hashlib
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import get_settings
from models.deal import as_utc, utc_now
from repositories import UserAccountRepository
from services.notification import EmailService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6


class SessionEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str


@dataclass(frozen=True)
class AuthSession:
    identity: Identity
    access_token: str
    expires_at: datetime  # aware UTC
    is_recovery: bool = False

    @property
    def user_id(self) -> str:
        return self.identity.user_id


@dataclass
class AuthResult:
    ok: bool
    error: Optional[str] = None


SessionCallback = Callable[[SessionEvent, Optional[AuthSession]], None]


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_recovery_link(return_url: str, code: str) -> str:
    """Append code=<token>&type=recovery to the return URL's query string."""
    parts = urlsplit(return_url)
    extra = urlencode({"code": code, "type": "recovery"})
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class SessionProvider(ABC):
    """Contract for issuing and tracking the authenticated identity."""

    @abstractmethod
    def get_current_session(self) -> Optional[AuthSession]: ...

    @abstractmethod
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""

    @abstractmethod
    def sign_in(self, email: str, secret: str) -> AuthResult: ...

    @abstractmethod
    def sign_up(self, email: str, secret: str) -> AuthResult: ...

    @abstractmethod
    def request_credential_reset(self, email: str, return_url: str) -> AuthResult: ...

    @abstractmethod
    def exchange_code_for_session(self, code: str) -> AuthResult: ...

    @abstractmethod
    def set_new_credential(self, secret: str) -> AuthResult: ...

    @abstractmethod
    def refresh_session(self) -> AuthResult: ...

    @abstractmethod
    def sign_out(self) -> AuthResult: ...


class LocalSessionProvider(SessionProvider):
    """
    Session provider backed by the local UserAccount table.
    Holds one session at a time, as a browser tab would.
    """

    def __init__(
        self,
        repository=UserAccountRepository,
        email_service: Optional[EmailService] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        settings = get_settings()
        self.repository = repository
        self.email_service = email_service or EmailService()
        self.clock = clock
        self.session_ttl = timedelta(minutes=settings.session_ttl_minutes)
        self.reset_ttl_minutes = settings.reset_token_ttl_minutes
        self._session: Optional[AuthSession] = None
        self._listeners: List[SessionCallback] = []

    # ==================== Events ====================
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self, event: SessionEvent, session: Optional[AuthSession]):
        logger.debug(f"Session event {event.value}")
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception:
                logger.exception(f"Session listener failed on {event.value}")

    def _start_session(self, identity: Identity, is_recovery: bool = False) -> AuthSession:
        self._session = AuthSession(
            identity=identity,
            access_token=secrets.token_urlsafe(32),
            expires_at=self.clock() + self.session_ttl,
            is_recovery=is_recovery
        )
        return self._session

    # ==================== Session ====================
    def get_current_session(self) -> Optional[AuthSession]:
        """Current session, or None. An expired session is dropped and SIGNED_OUT fires."""
        if self._session is not None and self._session.expires_at <= self.clock():
            logger.info("Session expired")
            self._session = None
            self._emit(SessionEvent.SIGNED_OUT, None)
        return self._session

    def refresh_session(self) -> AuthResult:
        session = self.get_current_session()
        if session is None:
            return AuthResult(False, "Auth session missing")
        self._session = replace(
            session,
            access_token=secrets.token_urlsafe(32),
            expires_at=self.clock() + self.session_ttl
        )
        self._emit(SessionEvent.TOKEN_REFRESHED, self._session)
        return AuthResult(True)

    def sign_out(self) -> AuthResult:
        self._session = None
        self._emit(SessionEvent.SIGNED_OUT, None)
        return AuthResult(True)

    # ==================== Credentials ====================
    def sign_in(self, email: str, secret: str) -> AuthResult:
        if not email or not secret:
            return AuthResult(False, "Email and password are required")
        try:
            account = self.repository.get_by_email(email)
        except SQLAlchemyError as e:
            logger.error(f"Sign-in lookup failed: {e}")
            return AuthResult(False, "Sign-in is temporarily unavailable")

        if account is None or not verify_password(secret, account.password_hash):
            logger.info("Rejected sign-in attempt")
            return AuthResult(False, "Invalid login credentials")

        session = self._start_session(Identity(user_id=account.id, email=account.email))
        logger.info(f"User {account.id} signed in")
        self._emit(SessionEvent.SIGNED_IN, session)
        return AuthResult(True)

    def sign_up(self, email: str, secret: str) -> AuthResult:
        if not email or "@" not in email:
            return AuthResult(False, "A valid email is required")
        if not secret or len(secret) < MIN_PASSWORD_LENGTH:
            return AuthResult(False, f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            if self.repository.get_by_email(email) is not None:
                return AuthResult(False, "User already registered")
            account = self.repository.add(email, get_password_hash(secret))
        except IntegrityError:
            return AuthResult(False, "User already registered")
        except SQLAlchemyError as e:
            logger.error(f"Sign-up failed: {e}")
            return AuthResult(False, "Sign-up is temporarily unavailable")

        logger.info(f"Registered user {account.id}")
        return AuthResult(True)

    def request_credential_reset(self, email: str, return_url: str) -> AuthResult:
        """
        Mail a one-time recovery link to the account's address.
        Unknown addresses report success too, so the form does not reveal who is registered.
        """
        if not email:
            return AuthResult(False, "Email is required")
        try:
            account = self.repository.get_by_email(email)
            if account is None:
                logger.info("Password reset requested for unknown email")
                return AuthResult(True)

            token = secrets.token_urlsafe(32)
            expires_at = self.clock() + timedelta(minutes=self.reset_ttl_minutes)
            self.repository.set_reset_token(account.id, _hash_token(token), expires_at)
        except SQLAlchemyError as e:
            logger.error(f"Password reset request failed: {e}")
            return AuthResult(False, "Password reset is temporarily unavailable")

        link = build_recovery_link(return_url, token)
        if not self.email_service.send_password_reset(account.email, link, self.reset_ttl_minutes):
            return AuthResult(False, "Could not send the recovery email")
        return AuthResult(True)

    def exchange_code_for_session(self, code: str) -> AuthResult:
        """Trade a recovery code for a session in recovery mode. The code is single-use."""
        if not code:
            return AuthResult(False, "Recovery code is missing")
        try:
            account = self.repository.get_by_reset_token(_hash_token(code))
            if account is None:
                return AuthResult(False, "Recovery link is invalid or has already been used")
            if account.reset_expires_at is None or as_utc(account.reset_expires_at) <= self.clock():
                self.repository.set_reset_token(account.id, None, None)
                return AuthResult(False, "Recovery link has expired")
            self.repository.set_reset_token(account.id, None, None)
        except SQLAlchemyError as e:
            logger.error(f"Recovery code exchange failed: {e}")
            return AuthResult(False, "Password reset is temporarily unavailable")

        session = self._start_session(
            Identity(user_id=account.id, email=account.email),
            is_recovery=True
        )
        logger.info(f"User {account.id} entered password recovery")
        self._emit(SessionEvent.PASSWORD_RECOVERY, session)
        return AuthResult(True)

    def set_new_credential(self, secret: str) -> AuthResult:
        session = self.get_current_session()
        if session is None:
            return AuthResult(False, "Auth session missing")
        if not secret or len(secret) < MIN_PASSWORD_LENGTH:
            return AuthResult(False, f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            updated = self.repository.set_password_hash(session.user_id, get_password_hash(secret))
        except SQLAlchemyError as e:
            logger.error(f"Password update failed: {e}")
            return AuthResult(False, "Password update is temporarily unavailable")
        if updated is None:
            return AuthResult(False, "User not found")

        self._session = replace(session, is_recovery=False)
        logger.info(f"User {session.user_id} updated their password")
        self._emit(SessionEvent.USER_UPDATED, self._session)
        return AuthResult(True)
