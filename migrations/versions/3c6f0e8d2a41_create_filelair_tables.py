"""Create file records, rate limits and download tokens

Revision ID: 3c6f0e8d2a41
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c6f0e8d2a41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'file_records',
        sa.Column('share_id', sa.String(length=32), primary_key=True),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('storage_key', sa.String(length=1024), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=60), nullable=True),
        sa.Column('uploaded_at', sa.BigInteger(), nullable=False),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scan_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('scan_date', sa.BigInteger(), nullable=True),
        sa.Column('scan_result', sa.Text(), nullable=True),
    )
    op.create_index('ix_file_records_expires_at', 'file_records', ['expires_at'], unique=False)

    op.create_table(
        'rate_limits',
        sa.Column('key', sa.String(length=255), primary_key=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('window_start', sa.BigInteger(), nullable=False),
        sa.Column('last_attempt', sa.BigInteger(), nullable=False),
        sa.Column('locked_until', sa.BigInteger(), nullable=True),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_rate_limits_expires_at', 'rate_limits', ['expires_at'], unique=False)

    op.create_table(
        'download_tokens',
        sa.Column('token_id', sa.String(length=64), primary_key=True),
        sa.Column('share_id', sa.String(length=32), nullable=False),
        sa.Column('client_address', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.BigInteger(), nullable=True),
    )
    op.create_index('ix_download_tokens_share_id', 'download_tokens', ['share_id'], unique=False)
    op.create_index('ix_download_tokens_expires_at', 'download_tokens', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_download_tokens_expires_at', table_name='download_tokens')
    op.drop_index('ix_download_tokens_share_id', table_name='download_tokens')
    op.drop_table('download_tokens')
    op.drop_index('ix_rate_limits_expires_at', table_name='rate_limits')
    op.drop_table('rate_limits')
    op.drop_index('ix_file_records_expires_at', table_name='file_records')
    op.drop_table('file_records')
