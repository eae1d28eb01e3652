"""
Services package for Dealbook.
Provides core business logic separated from presentation and data layers.
"""

from services.calculations import (
    NumericMode,
    DealType,
    MonthlyStats,
    SingleLegStats,
    to_number,
    clamp_percent,
    compute_buy_total,
    compute_sell_total,
    deal_profit,
    aggregate_month,
    calc_total,
    calc_pnl,
    aggregate_single_leg
)
from services.common import (
    format_month_key,
    parse_month_key,
    month_bounds,
    month_label,
    months_for_preset,
    previous_months
)
from services.cache import MonthlyCache
from services.notification import EmailService
from services.session_provider import (
    SessionProvider,
    LocalSessionProvider,
    SessionEvent,
    AuthSession,
    AuthResult,
    Identity
)
from services.auth_state import AuthController, AuthState
from services.deals import DealService, DealPreview, DealInput, DealUpdate

__all__ = [
    # Calculations
    'NumericMode',
    'DealType',
    'MonthlyStats',
    'SingleLegStats',
    'to_number',
    'clamp_percent',
    'compute_buy_total',
    'compute_sell_total',
    'deal_profit',
    'aggregate_month',
    'calc_total',
    'calc_pnl',
    'aggregate_single_leg',
    # Month keys
    'format_month_key',
    'parse_month_key',
    'month_bounds',
    'month_label',
    'months_for_preset',
    'previous_months',
    # Services
    'MonthlyCache',
    'EmailService',
    'SessionProvider',
    'LocalSessionProvider',
    'SessionEvent',
    'AuthSession',
    'AuthResult',
    'Identity',
    'AuthController',
    'AuthState',
    'DealService',
    'DealPreview',
    'DealInput',
    'DealUpdate',
]
