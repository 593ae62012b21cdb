"""SQLAlchemy model for the token blacklist.

Stores fingerprints of revoked tokens until the tokens themselves expire.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from systemrpg.infrastructure.persistence.database import Base


class TokenBlacklistModel(Base):
    """SQLAlchemy model for the token_blacklist table.

    Attributes:
        id: Primary key (UUID string).
        token_hash: SHA-256 hex fingerprint of the revoked token.
        expires_at: Expiry of the revoked token; the row can be pruned after it.
        created_at: When the token was revoked.
        reason: Optional reason for revocation.
        user_id: Optional id of the user the token belonged to.
    """

    __tablename__ = "token_blacklist"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Entry ID (UUID)",
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="SHA-256 hex fingerprint of the token",
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Expiry copied from the token's exp claim",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the token was blacklisted",
    )
    reason: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Optional reason for revocation",
    )
    user_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="User the revoked token belonged to",
    )

    def __repr__(self) -> str:
        return f"<TokenBlacklist(id={self.id}, user_id={self.user_id}, reason={self.reason})>"
