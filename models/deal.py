"""
Deal model - one USDT round-trip with a buy leg and a sell leg.
"""

from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Current time as timezone-aware UTC, the storage convention for all timestamps."""
    return datetime.now(timezone.utc)


def to_storage_datetime(value: datetime) -> datetime:
    """
    Normalise an incoming datetime to aware UTC.
    Naive input is taken to be local time, matching how month windows are built.
    """
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Aware UTC view of a value read back from the store.
    Some SQLite drivers hand timestamps back without tzinfo; those are already UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Deal(SQLModel, table=True):
    """Represents a buy+sell exchange of USDT recorded by a user."""
    __tablename__ = "deals"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    deal_date: datetime = Field(default_factory=utc_now, index=True)  # UTC
    usdt: float
    buy_commission: float = Field(default=0.0)  # percent, 0..100
    buy_amount: float = Field(default=0.0)
    sell_commission: float = Field(default=0.0)  # percent, 0..100
    sell_amount: float = Field(default=0.0)
