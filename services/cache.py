"""
Per-user, per-month cache of deals and their aggregated stats.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from models import Deal
from services.calculations import MonthlyStats, aggregate_month

logger = logging.getLogger(__name__)


@dataclass
class MonthEntry:
    deals: List[Deal]
    stats: MonthlyStats


class MonthlyCache:
    """
    Deals and MonthlyStats keyed by (user_id, month_key).

    Stats are recomputed whenever a month's deal list is stored. Entries are
    dropped per user after a mutation, and wholesale on sign-out or user switch.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], MonthEntry] = {}

    def get(self, user_id: str, month_key: str) -> Optional[MonthEntry]:
        return self._entries.get((user_id, month_key))

    def put(self, user_id: str, month_key: str, deals: List[Deal]) -> MonthEntry:
        entry = MonthEntry(deals=list(deals), stats=aggregate_month(deals))
        self._entries[(user_id, month_key)] = entry
        return entry

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached month of one user. Returns how many were dropped."""
        keys = [key for key in self._entries if key[0] == user_id]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cached month(s) for user {user_id}")
        return len(keys)

    def clear(self, *_args):
        """Drop everything. Accepts and ignores callback arguments."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
