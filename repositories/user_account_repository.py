"""
UserAccount Repository - data access layer for the UserAccount model.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import Session, select

from db_engine import get_engine
from models import UserAccount


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserAccountRepository:
    """Repository for UserAccount operations."""

    @staticmethod
    def add(email: str, password_hash: str, session: Optional[Session] = None) -> UserAccount:
        """Create an account. The email is stored lower-cased."""
        def _add(sess: Session) -> UserAccount:
            account = UserAccount(email=normalize_email(email), password_hash=password_hash)
            sess.add(account)
            sess.commit()
            sess.refresh(account)
            return account

        if session is not None:
            return _add(session)
        else:
            with Session(get_engine()) as session:
                return _add(session)

    @staticmethod
    def get_by_email(email: str, session: Optional[Session] = None) -> Optional[UserAccount]:
        def _get(sess: Session) -> Optional[UserAccount]:
            statement = select(UserAccount).where(UserAccount.email == normalize_email(email))
            return sess.exec(statement).first()

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def get_by_id(user_id: str, session: Optional[Session] = None) -> Optional[UserAccount]:
        def _get(sess: Session) -> Optional[UserAccount]:
            return sess.get(UserAccount, user_id)

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def get_by_reset_token(token_hash: str, session: Optional[Session] = None) -> Optional[UserAccount]:
        def _get(sess: Session) -> Optional[UserAccount]:
            statement = select(UserAccount).where(UserAccount.reset_token_hash == token_hash)
            return sess.exec(statement).first()

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def set_reset_token(
        user_id: str,
        token_hash: Optional[str],
        expires_at: Optional[datetime],
        session: Optional[Session] = None
    ) -> Optional[UserAccount]:
        """Store (or clear, with None) the password reset token for an account."""
        def _set(sess: Session) -> Optional[UserAccount]:
            account = sess.get(UserAccount, user_id)
            if account:
                account.reset_token_hash = token_hash
                account.reset_expires_at = expires_at
                sess.add(account)
                sess.commit()
                sess.refresh(account)
                return account
            return None

        if session is not None:
            return _set(session)
        else:
            with Session(get_engine()) as session:
                return _set(session)

    @staticmethod
    def set_password_hash(
        user_id: str,
        password_hash: str,
        session: Optional[Session] = None
    ) -> Optional[UserAccount]:
        """Replace the password hash and invalidate any outstanding reset token."""
        def _set(sess: Session) -> Optional[UserAccount]:
            account = sess.get(UserAccount, user_id)
            if account:
                account.password_hash = password_hash
                account.reset_token_hash = None
                account.reset_expires_at = None
                sess.add(account)
                sess.commit()
                sess.refresh(account)
                return account
            return None

        if session is not None:
            return _set(session)
        else:
            with Session(get_engine()) as session:
                return _set(session)
