"""Repository for token blacklist operations.

Provides database operations for recording revoked token fingerprints,
looking them up and pruning entries whose tokens have expired.
"""

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from systemrpg.infrastructure.persistence.models import TokenBlacklistModel


class TokenBlacklistRepository:
    """Repository for token blacklist database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    async def create(self, model: TokenBlacklistModel) -> TokenBlacklistModel:
        """Store a new blacklist entry.

        Uniqueness of ``token_hash`` is enforced by the database, so a
        duplicate surfaces as ``IntegrityError`` on flush.

        Args:
            model: The TokenBlacklistModel to store.

        Returns:
            The stored model with updated fields.
        """
        self._session.add(model)
        await self._session.flush()
        return model

    async def get_by_hash(self, token_hash: str) -> TokenBlacklistModel | None:
        stmt = select(TokenBlacklistModel).where(TokenBlacklistModel.token_hash == token_hash)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def exists_by_hash(self, token_hash: str) -> bool:
        """Check whether a fingerprint is blacklisted.

        Args:
            token_hash: SHA-256 hex fingerprint of the token.

        Returns:
            True if an entry exists, False otherwise.
        """
        stmt = (
            select(TokenBlacklistModel.id)
            .where(TokenBlacklistModel.token_hash == token_hash)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def delete_expired(self, now: datetime) -> int:
        """Delete entries whose token expired before ``now``.

        Args:
            now: Reference time (timezone-aware UTC).

        Returns:
            Number of entries deleted.
        """
        stmt = delete(TokenBlacklistModel).where(TokenBlacklistModel.expires_at < now)
        result = await self._session.execute(stmt)
        return result.rowcount

    async def count(self) -> int:
        result = await self._session.execute(select(func.count(TokenBlacklistModel.id)))
        return result.scalar_one()
