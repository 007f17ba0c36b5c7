"""005: create monthly_closing_balances

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE monthly_closing_balances (
            id              BIGSERIAL       PRIMARY KEY,
            owner_type      VARCHAR(16)     NOT NULL,
            owner_id        VARCHAR(64)     NOT NULL,
            month           DATE            NOT NULL,
            closing_balance NUMERIC(14, 2)  NOT NULL,
            sales           NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            payouts         NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            commission      NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            collected       NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            paid            NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            ticket_count    INTEGER         NOT NULL DEFAULT 0,
            closed_by       VARCHAR(64)     NOT NULL,
            closed_at       TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_monthly_closing_owner_month UNIQUE (owner_type, owner_id, month),
            CONSTRAINT ck_monthly_closing_owner_type CHECK (owner_type IN ('OUTLET', 'SELLER')),
            CONSTRAINT ck_monthly_closing_first_day CHECK (EXTRACT(DAY FROM month) = 1)
        );
    """)
    op.execute(
        "COMMENT ON TABLE monthly_closing_balances IS "
        "'Stored month-end positions; authoritative for previous-month carry';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS monthly_closing_balances CASCADE;")
