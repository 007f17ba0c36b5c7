"""006: create sale_commissions

Revision ID: 006
Revises: 005
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE sale_commissions (
            account_id      VARCHAR(64)     NOT NULL REFERENCES accounts (id),
            ticket_id       VARCHAR(64)     NOT NULL,
            bet_id          VARCHAR(64)     NOT NULL,
            stake           NUMERIC(14, 2)  NOT NULL,
            rate            NUMERIC(5, 2)   NOT NULL DEFAULT 0,
            amount          NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            origin          VARCHAR(16),
            rule_id         VARCHAR(64),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            PRIMARY KEY (account_id, bet_id)
        );
    """)
    op.execute("CREATE INDEX idx_sale_commissions_ticket ON sale_commissions (account_id, ticket_id);")
    op.execute(
        "COMMENT ON TABLE sale_commissions IS "
        "'Per-bet commission resolved when the SALE was posted; replays return these rows';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS sale_commissions CASCADE;")
