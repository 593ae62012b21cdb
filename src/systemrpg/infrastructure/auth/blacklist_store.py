"""Persistent store of revoked token fingerprints.

Every lookup runs in its own short session, bounded by a timeout and retried
on transient storage errors. When the store cannot be consulted the caller
gets ``BlacklistUnavailableError`` and must treat the token as unusable.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from systemrpg.core.config import Settings, get_settings
from systemrpg.core.logging import get_logger
from systemrpg.infrastructure.auth.exceptions import (
    BlacklistUnavailableError,
    DuplicateEntryError,
)
from systemrpg.infrastructure.auth.token_codec import TokenCodec
from systemrpg.infrastructure.persistence.models import TokenBlacklistModel
from systemrpg.infrastructure.persistence.repositories import TokenBlacklistRepository

logger = get_logger(__name__)

T = TypeVar("T")

REASON_MAX_LENGTH = 100

# Errors worth another attempt; anything else propagates unchanged
TRANSIENT_ERRORS = (OperationalError, InterfaceError, asyncio.TimeoutError, ConnectionError)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BlacklistStore:
    """Record and look up revoked tokens by fingerprint."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        codec: TokenCodec | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory for database sessions.
            codec: Token codec, required only for ``revoke``.
            settings: Optional settings instance. Defaults to the cached settings.
        """
        settings = settings or get_settings()
        self._session_factory = session_factory
        self._codec = codec
        self._timeout = settings.blacklist_lookup_timeout_seconds
        self._max_retries = max(0, settings.blacklist_max_retries)
        self._backoff = settings.blacklist_retry_backoff_seconds

    async def _with_retry(
        self,
        operation: str,
        action: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``action`` in a fresh session with timeout and bounded retries.

        Raises:
            BlacklistUnavailableError: When every attempt failed transiently.
        """
        attempts = self._max_retries + 1
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            try:
                async with self._session_factory() as session:
                    return await asyncio.wait_for(action(session), timeout=self._timeout)
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    "Token blacklist operation failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=type(e).__name__,
                )
                if attempt < attempts and self._backoff > 0:
                    await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))

        logger.error(
            "Token blacklist unavailable",
            operation=operation,
            attempts=attempts,
            error=type(last_error).__name__ if last_error else None,
        )
        raise BlacklistUnavailableError(
            f"Token blacklist unavailable after {attempts} attempts"
        ) from last_error

    async def add(
        self,
        fingerprint: str,
        expires_at: datetime,
        reason: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """Blacklist a token fingerprint until ``expires_at``.

        Raises:
            DuplicateEntryError: If the fingerprint is already blacklisted.
            BlacklistUnavailableError: If the store cannot be written.
        """
        if reason is not None:
            reason = reason[:REASON_MAX_LENGTH]

        async def _insert(session: AsyncSession) -> None:
            repository = TokenBlacklistRepository(session)
            try:
                await repository.create(
                    TokenBlacklistModel(
                        token_hash=fingerprint,
                        expires_at=_as_utc(expires_at),
                        reason=reason,
                        user_id=user_id,
                    )
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateEntryError(fingerprint) from e

        await self._with_retry("add", _insert)
        logger.info("Token blacklisted", user_id=user_id, reason=reason)

    async def contains(self, fingerprint: str) -> bool:
        """Check whether a fingerprint is blacklisted.

        Raises:
            BlacklistUnavailableError: If the lookup keeps failing or timing out.
        """

        async def _lookup(session: AsyncSession) -> bool:
            return await TokenBlacklistRepository(session).exists_by_hash(fingerprint)

        return await self._with_retry("contains", _lookup)

    async def prune_expired(self, now: datetime | None = None) -> int:
        """Delete every entry whose token expired before ``now``.

        Runs in a single transaction.

        Returns:
            Number of entries removed.
        """
        now = _as_utc(now or datetime.now(timezone.utc))

        async with self._session_factory() as session:
            async with session.begin():
                repository = TokenBlacklistRepository(session)
                deleted = await repository.delete_expired(now)
            remaining = await repository.count()

        logger.info("Expired blacklist entries pruned", deleted=deleted, remaining=remaining)
        return deleted

    async def count(self) -> int:
        async with self._session_factory() as session:
            return await TokenBlacklistRepository(session).count()

    async def revoke(
        self,
        token: str,
        reason: str | None = None,
        user_id: str | None = None,
    ) -> bool:
        """Blacklist a token until its own expiry.

        The token must carry a valid signature and an ``exp`` claim. A token
        that is already blacklisted counts as revoked.

        Args:
            token: The raw token.
            reason: Optional reason, truncated to 100 characters.
            user_id: Owner of the token. Defaults to the token's userId claim.

        Returns:
            True if a new entry was written, False if it already existed.

        Raises:
            MalformedTokenError: If the token does not verify.
            ClaimMissingError: If the token has no usable ``exp``.
            BlacklistUnavailableError: If the store cannot be written.
        """
        if self._codec is None:
            raise RuntimeError("BlacklistStore.revoke requires a token codec")

        claims = self._codec.parse_claims(token)
        expires_at = self._codec.extract_expiration(claims)
        if user_id is None:
            claimed = claims.get("userId")
            user_id = claimed if isinstance(claimed, str) else None

        try:
            await self.add(self._codec.fingerprint(token), expires_at, reason, user_id)
        except DuplicateEntryError:
            logger.debug("Token already blacklisted", user_id=user_id)
            return False
        return True
