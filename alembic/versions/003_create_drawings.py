"""003: create lotteries, lottery_multipliers, drawings, drawing_exclusions

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE lotteries (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            name            VARCHAR(120)    NOT NULL,
            digits          SMALLINT        NOT NULL DEFAULT 2,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_lotteries_digits CHECK (digits BETWEEN 1 AND 8)
        );
    """)
    op.execute("""
        CREATE TABLE drawings (
            id                  VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            lottery_id          VARCHAR(64)     NOT NULL REFERENCES lotteries (id),
            scheduled_at        TIMESTAMPTZ     NOT NULL,
            digits              SMALLINT        NOT NULL DEFAULT 2,
            status              VARCHAR(16)     NOT NULL DEFAULT 'SCHEDULED',
            winning_number      VARCHAR(8),
            bonus_multiplier_id VARCHAR(64),
            bonus_multiplier    NUMERIC(10, 2),
            bonus_outcome       VARCHAR(64),
            has_winner          BOOLEAN         NOT NULL DEFAULT FALSE,
            evaluated_at        TIMESTAMPTZ,
            evaluated_by        VARCHAR(64),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_drawings_status CHECK (
                status IN ('SCHEDULED', 'OPEN', 'EVALUATED', 'CLOSED')
            ),
            CONSTRAINT ck_drawings_evaluated_number CHECK (
                status NOT IN ('EVALUATED', 'CLOSED') OR winning_number IS NOT NULL
            )
        );
    """)
    op.execute("CREATE INDEX idx_drawings_lottery_time ON drawings (lottery_id, scheduled_at);")
    op.execute("""
        CREATE TRIGGER trg_drawings_updated_at
            BEFORE UPDATE ON drawings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE lottery_multipliers (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            lottery_id      VARCHAR(64)     NOT NULL REFERENCES lotteries (id),
            name            VARCHAR(64)     NOT NULL,
            value           NUMERIC(10, 2)  NOT NULL,
            kind            VARCHAR(16)     NOT NULL,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            drawing_id      VARCHAR(64)     REFERENCES drawings (id),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_multipliers_kind CHECK (kind IN ('NUMBER', 'BONUS')),
            CONSTRAINT ck_multipliers_value CHECK (value >= 0)
        );
    """)
    op.execute("""
        ALTER TABLE drawings
        ADD CONSTRAINT fk_drawings_bonus_multiplier
        FOREIGN KEY (bonus_multiplier_id) REFERENCES lottery_multipliers (id);
    """)

    op.execute("""
        CREATE TABLE drawing_exclusions (
            id              BIGSERIAL       PRIMARY KEY,
            drawing_id      VARCHAR(64)     NOT NULL REFERENCES drawings (id),
            outlet_id       VARCHAR(64)     NOT NULL REFERENCES outlets (id),
            seller_id       VARCHAR(64)     REFERENCES sellers (id),
            reason          VARCHAR(500),
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_by      VARCHAR(64)     NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE INDEX idx_drawing_exclusions_active
        ON drawing_exclusions (drawing_id, outlet_id)
        WHERE is_active;
    """)
    op.execute("COMMENT ON COLUMN drawing_exclusions.seller_id IS 'NULL excludes the whole outlet';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS drawing_exclusions CASCADE;")
    op.execute("ALTER TABLE drawings DROP CONSTRAINT IF EXISTS fk_drawings_bonus_multiplier;")
    op.execute("DROP TABLE IF EXISTS lottery_multipliers CASCADE;")
    op.execute("DROP TABLE IF EXISTS drawings CASCADE;")
    op.execute("DROP TABLE IF EXISTS lotteries CASCADE;")
