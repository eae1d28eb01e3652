"""
Database models for Dealbook.
All SQLModel table definitions are centralized here.
"""

from models.deal import Deal
from models.user_account import UserAccount

__all__ = [
    'Deal',
    'UserAccount',
]
