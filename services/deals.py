"""
Deal service: create, browse, edit and delete USDT deals for the signed-in user.

Reads go through MonthlyCache and are retried on transient store errors;
writes are not retried and invalidate the user's cached months once the
store has acknowledged them.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from config import Settings, get_settings
from errors import DealNotFoundError, DealValidationError, RemoteOperationError
from models import Deal
from repositories import DealRepository
from repositories.deal_repository import UPDATABLE_FIELDS
from services.auth_state import AuthController
from services.cache import MonthlyCache
from services.calculations import (
    MonthlyStats,
    NumericMode,
    clamp_percent,
    compute_buy_total,
    compute_sell_total,
    to_number,
)
from services.common import month_bounds, parse_month_key, resolve_timezone

logger = logging.getLogger(__name__)

COMMISSION_FIELDS = ('buy_commission', 'sell_commission')


class DealInput(BaseModel):
    """Validated new-deal form values."""
    usdt: float = Field(gt=0)
    buy_commission: float = Field(default=0.0, ge=-100, le=100)
    sell_commission: float = Field(default=0.0, ge=-100, le=100)

    @field_validator('usdt', 'buy_commission', 'sell_commission', mode='before')
    @classmethod
    def _finite(cls, value: Any) -> float:
        return to_number(value, NumericMode.STRICT)


class DealUpdate(BaseModel):
    """Validated edit-form values. Only the fields that were sent are set."""
    usdt: Optional[float] = Field(default=None, gt=0)
    buy_commission: Optional[float] = Field(default=None, ge=-100, le=100)
    buy_amount: Optional[float] = Field(default=None, ge=0)
    sell_commission: Optional[float] = Field(default=None, ge=-100, le=100)
    sell_amount: Optional[float] = Field(default=None, ge=0)

    @field_validator('*', mode='before')
    @classmethod
    def _finite(cls, value: Any) -> float:
        return to_number(value, NumericMode.STRICT)


@dataclass
class DealPreview:
    """Live form preview of both legs."""
    buy_amount: float
    sell_amount: float

    @property
    def pnl(self) -> float:
        return self.sell_amount - self.buy_amount


class DealService:
    """
    Service for the signed-in user's deals.
    Every store call is scoped by the user id from the AuthController.
    """

    def __init__(
        self,
        auth: AuthController,
        repository=DealRepository,
        cache: Optional[MonthlyCache] = None,
        settings: Optional[Settings] = None
    ):
        self.auth = auth
        self.repository = repository
        self.cache = cache or MonthlyCache()
        self.settings = settings or get_settings()
        self.numeric_mode = NumericMode(self.settings.numeric_mode)
        self.tz = resolve_timezone(self.settings.app_timezone)
        auth.on_user_cleared(self.cache.clear)

    # ==================== Helpers ====================
    def _read(self, operation, *args):
        """Run a store read with retry on transient OperationalError."""
        retrying = Retrying(
            stop=(
                stop_after_attempt(max(self.settings.store_retry_attempts, 1))
                | stop_after_delay(self.settings.store_timeout_seconds)
            ),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(OperationalError),
            reraise=True
        )
        try:
            return retrying(operation, *args)
        except SQLAlchemyError as e:
            logger.error(f"Store read failed: {e}")
            raise RemoteOperationError("Could not load deals, please try again") from e

    def _write(self, operation, *args):
        try:
            return operation(*args)
        except SQLAlchemyError as e:
            logger.error(f"Store write failed: {e}")
            raise RemoteOperationError("Could not save changes, please try again") from e

    def _after_mutation(self, user_id: str):
        self.cache.invalidate_user(user_id)

    # ==================== Preview ====================
    def preview(self, usdt: Any, buy_commission: Any, sell_commission: Any) -> DealPreview:
        """Both leg totals for the form as the user types. Never raises in lenient mode."""
        return DealPreview(
            buy_amount=compute_buy_total(usdt, buy_commission, self.numeric_mode),
            sell_amount=compute_sell_total(usdt, sell_commission, self.numeric_mode)
        )

    # ==================== Create ====================
    def create_deal(self, usdt: Any, buy_commission: Any = 0, sell_commission: Any = 0) -> Deal:
        """
        Validate the form, compute both legs from the submitted values and store the deal.

        Raises:
            DealValidationError: malformed input
            AuthorizationError: no authenticated session
            RemoteOperationError: the store rejected the insert
        """
        try:
            values = DealInput(
                usdt=usdt,
                buy_commission=buy_commission,
                sell_commission=sell_commission
            )
        except ValidationError as e:
            raise DealValidationError("Invalid deal input", e.errors()) from e

        user_id = self.auth.require_user()

        buy_commission = clamp_percent(values.buy_commission)
        sell_commission = clamp_percent(values.sell_commission)
        deal = self._write(
            self.repository.add,
            user_id,
            values.usdt,
            buy_commission,
            compute_buy_total(values.usdt, buy_commission),
            sell_commission,
            compute_sell_total(values.usdt, sell_commission)
        )
        logger.info(f"Created deal {deal.id} for user {user_id}")
        self._after_mutation(user_id)
        return deal

    # ==================== Read ====================
    def list_month(self, month_key: str) -> List[Deal]:
        """The user's deals for a YYYY-MM month, newest first."""
        return self._load_month(month_key).deals

    def month_stats(self, month_key: str) -> MonthlyStats:
        """PnL and total for a month."""
        return self._load_month(month_key).stats

    def _load_month(self, month_key: str):
        parse_month_key(month_key)
        user_id = self.auth.require_user()
        entry = self.cache.get(user_id, month_key)
        if entry is not None:
            return entry

        start, end = month_bounds(month_key, self.tz)
        deals = self._read(self.repository.get_in_range, user_id, start, end)
        logger.debug(f"Loaded {len(deals)} deal(s) for {month_key}")
        return self.cache.put(user_id, month_key, deals)

    # ==================== Update / Delete ====================
    def update_deal(self, deal_id: int, **fields: Any) -> Deal:
        """
        Change any of usdt, buy/sell commission and buy/sell amount.
        Values are validated strictly whatever the numeric mode; commissions
        are then clamped to [0, 100]. deal_date, user_id and id cannot change.

        Raises:
            DealValidationError: unknown field, nothing to update or malformed value
            DealNotFoundError: no such deal for this user
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise DealValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise DealValidationError("Nothing to update")

        try:
            checked = DealUpdate(**fields).model_dump(exclude_unset=True)
        except ValidationError as e:
            raise DealValidationError("Invalid deal update", e.errors()) from e

        values = {
            name: clamp_percent(value) if name in COMMISSION_FIELDS else value
            for name, value in checked.items()
        }

        user_id = self.auth.require_user()
        deal = self._write(self.repository.update, deal_id, user_id, values)
        if deal is None:
            raise DealNotFoundError(f"Deal {deal_id} not found")
        logger.info(f"Updated deal {deal_id}")
        self._after_mutation(user_id)
        return deal

    def delete_deal(self, deal_id: int) -> None:
        user_id = self.auth.require_user()
        if not self._write(self.repository.delete, deal_id, user_id):
            raise DealNotFoundError(f"Deal {deal_id} not found")
        logger.info(f"Deleted deal {deal_id}")
        self._after_mutation(user_id)
