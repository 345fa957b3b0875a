"""add otp_codes

Revision ID: 20251019_add_otp_codes
Revises: 20251019_create_send_core_tables
Create Date: 2025-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251019_add_otp_codes'
down_revision = '20251019_create_send_core_tables'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'otp_codes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('code_hash', sa.String(64), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('sms_message_id', sa.Uuid(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_otp_codes'),
        sa.ForeignKeyConstraint(
            ['sms_message_id'], ['sms_messages.id'],
            name='fk_otp_codes_sms_message_id_sms_messages',
        ),
    )
    op.create_index('ix_otp_codes_business_id', 'otp_codes', ['business_id'], unique=False)
    op.create_index('ix_otp_codes_sms_message_id', 'otp_codes', ['sms_message_id'], unique=False)
    op.create_index('ix_otp_codes_lookup', 'otp_codes', ['business_id', 'phone', 'status'], unique=False)


def downgrade():
    for ix in ('ix_otp_codes_lookup', 'ix_otp_codes_sms_message_id', 'ix_otp_codes_business_id'):
        op.drop_index(ix, table_name='otp_codes')
    op.drop_table('otp_codes')
