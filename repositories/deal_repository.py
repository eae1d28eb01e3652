"""
Deal Repository - data access layer for the Deal model.
Every query is scoped by user_id so one user never sees another's rows.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlmodel import Session, select

from db_engine import get_engine
from models import Deal
from models.deal import to_storage_datetime

# Fields a caller may change after creation
UPDATABLE_FIELDS = (
    'usdt',
    'buy_commission',
    'buy_amount',
    'sell_commission',
    'sell_amount',
)


class DealRepository:
    """Repository for Deal CRUD operations."""

    @staticmethod
    def add(
        user_id: str,
        usdt: float,
        buy_commission: float,
        buy_amount: float,
        sell_commission: float,
        sell_amount: float,
        deal_date: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> Deal:
        """
        Add a new deal to the database.

        Args:
            user_id: Owner of the deal
            usdt: USDT quantity exchanged
            buy_commission: Buy leg commission, percent
            buy_amount: Buy leg total
            sell_commission: Sell leg commission, percent
            sell_amount: Sell leg total
            deal_date: Optional timestamp, defaults to now
            session: Optional existing session for transaction reuse

        Returns:
            Created Deal object with its store-assigned id
        """
        def _create_deal(sess: Session) -> Deal:
            deal = Deal(
                user_id=user_id,
                usdt=usdt,
                buy_commission=buy_commission,
                buy_amount=buy_amount,
                sell_commission=sell_commission,
                sell_amount=sell_amount
            )
            if deal_date is not None:
                deal.deal_date = to_storage_datetime(deal_date)
            sess.add(deal)
            sess.commit()
            sess.refresh(deal)
            return deal

        if session is not None:
            return _create_deal(session)
        else:
            with Session(get_engine()) as session:
                return _create_deal(session)

    @staticmethod
    def get_by_id(deal_id: int, user_id: str, session: Optional[Session] = None) -> Optional[Deal]:
        """Retrieve a deal by id, or None if it is missing or owned by someone else."""
        def _get_by_id(sess: Session) -> Optional[Deal]:
            statement = select(Deal).where(Deal.id == deal_id, Deal.user_id == user_id)
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_in_range(
        user_id: str,
        start: datetime,
        end: datetime,
        session: Optional[Session] = None
    ) -> List[Deal]:
        """
        Retrieve a user's deals with start <= deal_date < end, newest first.

        Args:
            user_id: Owner of the deals
            start: Inclusive lower bound
            end: Exclusive upper bound
            session: Optional existing session for transaction reuse

        Returns:
            List of Deal objects
        """
        start_utc = to_storage_datetime(start)
        end_utc = to_storage_datetime(end)

        def _get_in_range(sess: Session) -> List[Deal]:
            statement = select(Deal).where(
                Deal.user_id == user_id,
                Deal.deal_date >= start_utc,
                Deal.deal_date < end_utc
            ).order_by(Deal.deal_date.desc(), Deal.id.desc())
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_in_range(session)
        else:
            with Session(get_engine()) as session:
                return _get_in_range(session)

    @staticmethod
    def update(
        deal_id: int,
        user_id: str,
        fields: Dict[str, Any],
        session: Optional[Session] = None
    ) -> Optional[Deal]:
        """
        Update an existing deal.
        Only keys listed in UPDATABLE_FIELDS are applied.

        Returns:
            Updated Deal object or None if not found for this user
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        def _update(sess: Session) -> Optional[Deal]:
            statement = select(Deal).where(Deal.id == deal_id, Deal.user_id == user_id)
            deal = sess.exec(statement).first()
            if deal:
                for name, value in fields.items():
                    setattr(deal, name, value)
                sess.add(deal)
                sess.commit()
                sess.refresh(deal)
                return deal
            return None

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)

    @staticmethod
    def delete(deal_id: int, user_id: str, session: Optional[Session] = None) -> bool:
        """
        Delete a deal by its ID.

        Returns:
            True if a row was deleted, False if none matched for this user
        """
        def _delete(sess: Session) -> bool:
            try:
                statement = select(Deal).where(Deal.id == deal_id, Deal.user_id == user_id)
                deal = sess.exec(statement).first()
                if deal:
                    sess.delete(deal)
                    sess.commit()
                    return True
                return False
            except Exception:
                sess.rollback()
                raise

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                return _delete(session)
