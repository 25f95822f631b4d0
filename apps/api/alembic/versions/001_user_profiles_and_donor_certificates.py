"""Create user_profiles and donor_certificates.

Revision ID: 001
Revises:
Create Date: 2025-01-03
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), server_default='donor', nullable=False),
        sa.Column('blood_type', sa.String(length=10), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'], unique=True)
    op.create_index('ix_user_profiles_role', 'user_profiles', ['role'])

    op.create_table(
        'donor_certificates',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('donor_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('content_type', sa.String(length=100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('donor_wallet_address', sa.String(length=42), nullable=False),
        sa.Column('cert_hash', sa.String(length=66), nullable=True),
        sa.Column('eligible', sa.Boolean(), nullable=True),
        sa.Column('tx_hash', sa.String(length=66), nullable=True),
        sa.Column('block_number', sa.Integer(), nullable=True),
        sa.Column('chain_address', sa.String(length=42), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_donor_certificates_donor_id', 'donor_certificates', ['donor_id'])
    op.create_index('ix_donor_certificates_donor_wallet_address', 'donor_certificates', ['donor_wallet_address'])
    op.create_index('ix_donor_certificates_cert_hash', 'donor_certificates', ['cert_hash'])
    op.create_index('ix_donor_certificates_eligible', 'donor_certificates', ['eligible'])
    op.create_index('ix_donor_certificates_created_at', 'donor_certificates', ['created_at'])
    op.create_index('ix_donor_certificates_verified_at', 'donor_certificates', ['verified_at'])


def downgrade() -> None:
    op.drop_table('donor_certificates')
    op.drop_table('user_profiles')
