"""SQLAlchemy models for SystemRPG system tables.

All models inherit from the Base class defined in database.py and are
created on application startup outside production.
"""

from systemrpg.infrastructure.persistence.models.token_blacklist import TokenBlacklistModel

__all__ = [
    "TokenBlacklistModel",
]
