"""create_token_blacklist

Revision ID: a3f1c2d4e5b6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = 'a3f1c2d4e5b6'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('token_blacklist',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Entry ID (UUID)'),
        sa.Column('token_hash', sa.String(length=64), nullable=False, comment='SHA-256 hex fingerprint of the token'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, comment="Expiry copied from the token's exp claim"),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='When the token was blacklisted'),
        sa.Column('reason', sa.String(length=100), nullable=True, comment='Optional reason for revocation'),
        sa.Column('user_id', sa.String(length=64), nullable=True, comment='User the revoked token belonged to'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('token_blacklist', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_token_blacklist_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_token_blacklist_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_token_blacklist_user_id'), ['user_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('token_blacklist', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_token_blacklist_user_id'))
        batch_op.drop_index(batch_op.f('ix_token_blacklist_expires_at'))
        batch_op.drop_index(batch_op.f('ix_token_blacklist_token_hash'))

    op.drop_table('token_blacklist')
