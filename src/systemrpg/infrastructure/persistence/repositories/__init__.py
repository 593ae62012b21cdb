"""Persistence repositories for database operations."""

from systemrpg.infrastructure.persistence.repositories.token_blacklist_repository import (
    TokenBlacklistRepository,
)

__all__ = [
    "TokenBlacklistRepository",
]
