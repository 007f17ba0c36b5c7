"""004: create tickets and bets

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE tickets (
            id                  VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            drawing_id          VARCHAR(64)     NOT NULL REFERENCES drawings (id),
            seller_id           VARCHAR(64)     NOT NULL REFERENCES sellers (id),
            outlet_id           VARCHAR(64)     NOT NULL REFERENCES outlets (id),
            business_date       DATE            NOT NULL,
            status              VARCHAR(16)     NOT NULL DEFAULT 'ACTIVE',
            is_active           BOOLEAN         NOT NULL DEFAULT TRUE,
            is_winner           BOOLEAN         NOT NULL DEFAULT FALSE,
            total_amount        NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            total_payout        NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            total_paid          NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            remaining_amount    NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            deleted_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_tickets_status CHECK (
                status IN ('ACTIVE', 'EVALUATED', 'PAID', 'CANCELLED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_tickets_drawing ON tickets (drawing_id);")
    op.execute("CREATE INDEX idx_tickets_seller_date ON tickets (seller_id, business_date);")
    op.execute("CREATE INDEX idx_tickets_outlet_date ON tickets (outlet_id, business_date);")
    op.execute("""
        CREATE TRIGGER trg_tickets_updated_at
            BEFORE UPDATE ON tickets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE bets (
            id                          VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            ticket_id                   VARCHAR(64)     NOT NULL REFERENCES tickets (id),
            bet_type                    VARCHAR(16)     NOT NULL,
            number                      VARCHAR(8)      NOT NULL,
            bonus_number                VARCHAR(8),
            stake                       NUMERIC(14, 2)  NOT NULL,
            multiplier                  NUMERIC(10, 2)  NOT NULL DEFAULT 0,
            is_winner                   BOOLEAN         NOT NULL DEFAULT FALSE,
            payout                      NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            seller_commission_amount    NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            seller_commission_rate      NUMERIC(5, 2)   NOT NULL DEFAULT 0,
            seller_commission_origin    VARCHAR(16),
            seller_commission_rule_id   VARCHAR(64),
            outlet_commission_amount    NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            outlet_commission_rate      NUMERIC(5, 2)   NOT NULL DEFAULT 0,
            outlet_commission_origin    VARCHAR(16),
            outlet_commission_rule_id   VARCHAR(64),
            deleted_at                  TIMESTAMPTZ,
            created_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_bets_type CHECK (bet_type IN ('NUMBER', 'BONUS')),
            CONSTRAINT ck_bets_stake CHECK (stake > 0)
        );
    """)
    op.execute("CREATE INDEX idx_bets_ticket ON bets (ticket_id);")
    op.execute("""
        CREATE TRIGGER trg_bets_updated_at
            BEFORE UPDATE ON bets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON COLUMN bets.multiplier IS "
        "'Snapshot taken at sale; a BONUS win overwrites it with the drawing bonus';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bets CASCADE;")
    op.execute("DROP TABLE IF EXISTS tickets CASCADE;")
