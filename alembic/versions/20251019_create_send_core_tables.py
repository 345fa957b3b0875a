"""create send core tables: business_accounts, credit_transactions, sender_identities, sms_messages

Revision ID: 20251019_create_send_core_tables
Revises:
Create Date: 2025-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251019_create_send_core_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Enums are stored as VARCHAR (native_enum=False) so new values need no type migration
    op.create_table(
        'business_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_business_accounts'),
        sa.UniqueConstraint('business_id', 'type', name='uq_business_accounts_business_type'),
        sa.CheckConstraint('balance >= 0', name='ck_business_accounts_balance_non_negative'),
    )
    op.create_index('ix_business_accounts_business_id', 'business_accounts', ['business_id'], unique=False)

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_credit_transactions'),
        sa.ForeignKeyConstraint(
            ['account_id'], ['business_accounts.id'],
            name='fk_credit_transactions_account_id_business_accounts',
        ),
    )
    op.create_index('ix_credit_transactions_business_id', 'credit_transactions', ['business_id'], unique=False)
    op.create_index('ix_credit_transactions_account_id', 'credit_transactions', ['account_id'], unique=False)
    op.create_index('ix_credit_transactions_reference_id', 'credit_transactions', ['reference_id'], unique=False)
    op.create_index('ix_credit_transactions_account_created', 'credit_transactions', ['account_id', 'created_at'], unique=False)

    op.create_table(
        'sender_identities',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(11), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('whitelist_status', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_sender_identities'),
        sa.UniqueConstraint('business_id', 'name', name='uq_sender_identities_business_name'),
    )
    op.create_index('ix_sender_identities_business_id', 'sender_identities', ['business_id'], unique=False)
    op.create_index('ix_sender_identities_created_at', 'sender_identities', ['created_at'], unique=False)
    op.create_index('ix_sender_identities_business_status', 'sender_identities', ['business_id', 'status'], unique=False)

    op.create_table(
        'sms_messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('recipient', sa.String(20), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('sender_identity_id', sa.Uuid(), nullable=False),
        sa.Column('template_id', sa.String(64), nullable=True),
        sa.Column('status', sa.String(40), nullable=False),
        sa.Column('cost', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.String(64), nullable=False),
        sa.Column('external_id', sa.String(128), nullable=True),
        sa.Column('error_code', sa.String(32), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_sms_messages'),
        sa.ForeignKeyConstraint(
            ['sender_identity_id'], ['sender_identities.id'],
            name='fk_sms_messages_sender_identity_id_sender_identities',
        ),
        sa.UniqueConstraint('message_id', name='uq_sms_messages_message_id'),
    )
    op.create_index('ix_sms_messages_business_id', 'sms_messages', ['business_id'], unique=False)
    op.create_index('ix_sms_messages_sender_identity_id', 'sms_messages', ['sender_identity_id'], unique=False)
    op.create_index('ix_sms_messages_status', 'sms_messages', ['status'], unique=False)
    op.create_index('ix_sms_messages_external_id', 'sms_messages', ['external_id'], unique=False)
    op.create_index('ix_sms_messages_business_created', 'sms_messages', ['business_id', 'created_at'], unique=False)


def downgrade():
    for ix in (
        'ix_sms_messages_business_created', 'ix_sms_messages_external_id', 'ix_sms_messages_status',
        'ix_sms_messages_sender_identity_id', 'ix_sms_messages_business_id',
    ):
        op.drop_index(ix, table_name='sms_messages')
    op.drop_table('sms_messages')

    for ix in ('ix_sender_identities_business_status', 'ix_sender_identities_created_at', 'ix_sender_identities_business_id'):
        op.drop_index(ix, table_name='sender_identities')
    op.drop_table('sender_identities')

    for ix in (
        'ix_credit_transactions_account_created', 'ix_credit_transactions_reference_id',
        'ix_credit_transactions_account_id', 'ix_credit_transactions_business_id',
    ):
        op.drop_index(ix, table_name='credit_transactions')
    op.drop_table('credit_transactions')

    op.drop_index('ix_business_accounts_business_id', table_name='business_accounts')
    op.drop_table('business_accounts')
