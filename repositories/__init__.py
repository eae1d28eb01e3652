"""
Repositories package for Dealbook.
Provides data access layer for all database operations.
"""

from repositories.deal_repository import DealRepository
from repositories.user_account_repository import UserAccountRepository

__all__ = [
    'DealRepository',
    'UserAccountRepository',
]
