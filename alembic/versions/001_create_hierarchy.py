"""001: common functions and the organization -> outlet -> seller hierarchy

Revision ID: 001
Revises: 
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE organizations (
            id                  VARCHAR(64)  PRIMARY KEY DEFAULT gen_random_uuid()::text,
            name                VARCHAR(200) NOT NULL,
            commission_policy   JSONB,
            created_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE TABLE outlets (
            id                  VARCHAR(64)  PRIMARY KEY DEFAULT gen_random_uuid()::text,
            org_id              VARCHAR(64)  NOT NULL REFERENCES organizations (id),
            name                VARCHAR(200) NOT NULL,
            commission_policy   JSONB,
            is_active           BOOLEAN      NOT NULL DEFAULT TRUE,
            deleted_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE TABLE sellers (
            id                  VARCHAR(64)  PRIMARY KEY DEFAULT gen_random_uuid()::text,
            outlet_id           VARCHAR(64)  NOT NULL REFERENCES outlets (id),
            name                VARCHAR(200) NOT NULL,
            commission_policy   JSONB,
            is_active           BOOLEAN      NOT NULL DEFAULT TRUE,
            deleted_at          TIMESTAMPTZ,
            created_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ  NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_outlets_org ON outlets (org_id);")
    op.execute("CREATE INDEX idx_sellers_outlet ON sellers (outlet_id);")
    for table in ("organizations", "outlets", "sellers"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
        """)
    op.execute(
        "COMMENT ON COLUMN sellers.commission_policy IS "
        "'Versioned commission policy document (version 1); NULL inherits the outlet';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS sellers CASCADE;")
    op.execute("DROP TABLE IF EXISTS outlets CASCADE;")
    op.execute("DROP TABLE IF EXISTS organizations CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
