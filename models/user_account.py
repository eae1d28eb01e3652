"""
UserAccount model - credentials for the local session provider.
"""

from typing import Optional
from datetime import datetime
from uuid import uuid4
from sqlmodel import SQLModel, Field

from models.deal import utc_now


class UserAccount(SQLModel, table=True):
    """A registered user. Emails are stored lower-cased."""
    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utc_now)

    # Password recovery
    reset_token_hash: Optional[str] = Field(default=None, index=True)
    reset_expires_at: Optional[datetime] = Field(default=None)
