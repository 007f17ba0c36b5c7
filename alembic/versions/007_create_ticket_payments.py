"""007: create ticket_payments

Revision ID: 007
Revises: 006
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ticket_payments (
            id                  VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            ticket_id           VARCHAR(64)     NOT NULL REFERENCES tickets (id),
            amount              NUMERIC(14, 2)  NOT NULL,
            remaining_after     NUMERIC(14, 2)  NOT NULL,
            is_partial          BOOLEAN         NOT NULL DEFAULT FALSE,
            is_final            BOOLEAN         NOT NULL DEFAULT FALSE,
            method              VARCHAR(32)     NOT NULL DEFAULT 'cash',
            notes               TEXT,
            idempotency_key     VARCHAR(128),
            paid_by             VARCHAR(64)     NOT NULL,
            paid_at             TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            is_reversed         BOOLEAN         NOT NULL DEFAULT FALSE,
            reversed_at         TIMESTAMPTZ,
            reversed_by         VARCHAR(64),
            reversal_reason     TEXT,
            CONSTRAINT ck_ticket_payments_amount CHECK (amount > 0),
            CONSTRAINT ck_ticket_payments_remaining CHECK (remaining_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_ticket_payments_ticket ON ticket_payments (ticket_id);")
    op.execute("""
        CREATE UNIQUE INDEX uq_ticket_payments_idempotency_key
        ON ticket_payments (idempotency_key)
        WHERE idempotency_key IS NOT NULL;
    """)
    op.execute("""
        ALTER TABLE tickets
        ADD CONSTRAINT ck_tickets_paid_within_payout CHECK (total_paid <= total_payout);
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE tickets DROP CONSTRAINT IF EXISTS ck_tickets_paid_within_payout;")
    op.execute("DROP TABLE IF EXISTS ticket_payments CASCADE;")
