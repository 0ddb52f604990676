"""initial_schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:41.503112

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1a9c2e7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('switches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('check_in_interval_days', sa.Integer(), nullable=False),
        sa.Column('grace_period_days', sa.Integer(), nullable=False),
        sa.Column('verification_window_days', sa.Integer(), nullable=False),
        sa.Column('final_delay_hours', sa.Integer(), nullable=False),
        sa.Column('use_verifiers', sa.Boolean(), nullable=False),
        sa.Column('required_confirmations', sa.Integer(), nullable=False),
        sa.Column('last_check_in_at', sa.DateTime(), nullable=True),
        sa.Column('next_check_in_due_at', sa.DateTime(), nullable=True),
        sa.Column('grace_period_ends_at', sa.DateTime(), nullable=True),
        sa.Column('scheduled_execution_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_switches_user_id', 'switches', ['user_id'])
    op.create_index('ix_switches_status', 'switches', ['status'])
    op.create_index('ix_switches_next_check_in_due_at', 'switches', ['next_check_in_due_at'])

    op.create_table('recipients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('switch_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['switch_id'], ['switches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('switch_id', 'email', name='uq_recipient_switch_email')
    )
    op.create_index('ix_recipients_switch_id', 'recipients', ['switch_id'])

    op.create_table('messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('switch_id', sa.Integer(), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('encrypted_content', sa.Text(), nullable=False),
        sa.Column('encrypted_subject', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['recipient_id'], ['recipients.id'], ),
        sa.ForeignKeyConstraint(['switch_id'], ['switches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recipient_id')
    )
    op.create_index('ix_messages_switch_id', 'messages', ['switch_id'])

    op.create_table('email_deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('provider_message_id', sa.String(length=255), nullable=True),
        sa.Column('attempted_at', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['messages.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('message_id')
    )
    op.create_index('ix_email_deliveries_status', 'email_deliveries', ['status'])

    op.create_table('verifiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('switch_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('invite_token', sa.String(length=100), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['switch_id'], ['switches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('switch_id', 'email', name='uq_verifier_switch_email')
    )
    op.create_index('ix_verifiers_switch_id', 'verifiers', ['switch_id'])
    op.create_index('ix_verifiers_invite_token', 'verifiers', ['invite_token'], unique=True)

    op.create_table('verification_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('switch_id', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('required_confirmations', sa.Integer(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('result', sa.String(length=20), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['switch_id'], ['switches.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verification_requests_switch_id', 'verification_requests', ['switch_id'])
    op.create_index('ix_verification_requests_expires_at', 'verification_requests', ['expires_at'])
    # At most one open request per switch
    op.create_index('uq_verification_request_open', 'verification_requests', ['switch_id'], unique=True,
                    sqlite_where=sa.text('completed_at IS NULL'),
                    postgresql_where=sa.text('completed_at IS NULL'))

    op.create_table('verification_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('verifier_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=100), nullable=False),
        sa.Column('otp_hash', sa.String(length=128), nullable=False),
        sa.Column('otp_expires_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['verification_requests.id'], ),
        sa.ForeignKeyConstraint(['verifier_id'], ['verifiers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'verifier_id', name='uq_verification_token_request_verifier')
    )
    op.create_index('ix_verification_tokens_token', 'verification_tokens', ['token'], unique=True)
    op.create_index('ix_verification_tokens_request_id', 'verification_tokens', ['request_id'])
    op.create_index('ix_verification_tokens_verifier_id', 'verification_tokens', ['verifier_id'])

    op.create_table('vote_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('verifier_id', sa.Integer(), nullable=False),
        sa.Column('vote', sa.String(length=10), nullable=False),
        sa.Column('voted_at', sa.DateTime(), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['request_id'], ['verification_requests.id'], ),
        sa.ForeignKeyConstraint(['verifier_id'], ['verifiers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'verifier_id', name='uq_vote_request_verifier')
    )
    op.create_index('ix_vote_records_request_id', 'vote_records', ['request_id'])
    op.create_index('ix_vote_records_verifier_id', 'vote_records', ['verifier_id'])

    op.create_table('check_in_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('switch_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['switch_id'], ['switches.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_in_tokens_switch_id', 'check_in_tokens', ['switch_id'])
    op.create_index('ix_check_in_tokens_token', 'check_in_tokens', ['token'], unique=True)

    # Polymorphic references, no foreign keys
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('check_in_tokens')
    op.drop_table('vote_records')
    op.drop_table('verification_tokens')
    op.drop_table('verification_requests')
    op.drop_table('verifiers')
    op.drop_table('email_deliveries')
    op.drop_table('messages')
    op.drop_table('recipients')
    op.drop_table('switches')
    op.drop_table('users')
