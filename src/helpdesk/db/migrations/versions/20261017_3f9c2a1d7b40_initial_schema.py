"""initial schema: companies, persons, session tokens, tickets, messages

Learn: Roles and ticket states are stored as short strings with CHECK
constraints (native_enum=False) rather than Postgres ENUM types, so
adding a state later is a constraint change, not an ALTER TYPE.

Revision ID: 3f9c2a1d7b40
Revises:
Create Date: 2026-10-17 09:12:44.118302
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a1d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_companies_title_lower', 'companies', [sa.text('lower(title)')], unique=True
    )

    op.create_table(
        'persons',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('full_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column(
            'role',
            sa.Enum('NORMAL', 'SUPPORT', 'ADMIN', name='person_role',
                    native_enum=False, length=16, create_constraint=True),
            nullable=False,
        ),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_persons_company_id', 'persons', ['company_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('value', sa.String(length=1024), nullable=False),
        sa.Column('person_id', sa.Integer(), nullable=False),
        sa.Column('expires_on', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('value'),
    )
    op.create_index(
        'ix_session_tokens_person_revoked', 'session_tokens', ['person_id', 'revoked']
    )

    op.create_table(
        'tickets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subject', sa.String(length=200), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column(
            'state',
            sa.Enum('open', 'pending', 'resolved', 'closed', name='ticket_state',
                    native_enum=False, length=16, create_constraint=True),
            nullable=False,
        ),
        sa.Column('person_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['person_id'], ['persons.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tickets_person_id', 'tickets', ['person_id'])
    op.create_index('ix_tickets_company_state', 'tickets', ['company_id', 'state'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ticket_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sender_id'], ['persons.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_ticket_id', 'messages', ['ticket_id'])


def downgrade() -> None:
    op.drop_index('ix_messages_ticket_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_tickets_company_state', table_name='tickets')
    op.drop_index('ix_tickets_person_id', table_name='tickets')
    op.drop_table('tickets')
    op.drop_index('ix_session_tokens_person_revoked', table_name='session_tokens')
    op.drop_table('session_tokens')
    op.drop_index('ix_persons_company_id', table_name='persons')
    op.drop_table('persons')
    op.drop_index('uq_companies_title_lower', table_name='companies')
    op.drop_table('companies')
