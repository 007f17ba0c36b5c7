"""002: create accounts, ledger_entries, payment_documents, bank_deposits

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE accounts (
            id              VARCHAR(64)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            owner_type      VARCHAR(16)     NOT NULL,
            owner_id        VARCHAR(64)     NOT NULL,
            currency        CHAR(3)         NOT NULL,
            balance         NUMERIC(14, 2)  NOT NULL DEFAULT 0,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_accounts_owner_type CHECK (owner_type IN ('OUTLET', 'SELLER', 'OTHER'))
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX accounts_one_active_per_owner
        ON accounts (owner_type, owner_id, currency)
        WHERE is_active;
    """)
    op.execute("""
        CREATE TRIGGER trg_accounts_updated_at
            BEFORE UPDATE ON accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            account_id      VARCHAR(64)     NOT NULL REFERENCES accounts (id),
            entry_type      VARCHAR(20)     NOT NULL,
            amount          NUMERIC(14, 2)  NOT NULL,
            business_date   DATE            NOT NULL,
            created_by      VARCHAR(64)     NOT NULL,
            reference_type  VARCHAR(30),
            reference_id    VARCHAR(64),
            idempotency_key VARCHAR(128),
            reversal_of     BIGINT          REFERENCES ledger_entries (id),
            note            VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_entry_type CHECK (
                entry_type IN (
                    'SALE', 'COMMISSION', 'PAYOUT',
                    'PAYMENT', 'COLLECTION', 'BANK_DEPOSIT',
                    'TRANSFER', 'REVERSAL'
                )
            ),
            CONSTRAINT ck_ledger_amount_nonzero CHECK (amount <> 0),
            CONSTRAINT ck_ledger_reversal_link CHECK (
                (entry_type = 'REVERSAL') = (reversal_of IS NOT NULL)
            ),
            CONSTRAINT uq_ledger_idempotency UNIQUE (account_id, idempotency_key),
            CONSTRAINT uq_ledger_reversal_of UNIQUE (reversal_of)
        );
    """)
    op.execute(
        "CREATE INDEX idx_ledger_account_date ON ledger_entries (account_id, business_date DESC, id DESC);"
    )
    op.execute("""
        CREATE INDEX idx_ledger_reference
        ON ledger_entries (reference_type, reference_id)
        WHERE reference_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE ledger_entries IS 'Append-only; corrections are REVERSAL entries';")

    op.execute("""
        CREATE TABLE payment_documents (
            id              VARCHAR(64)     PRIMARY KEY,
            from_account_id VARCHAR(64)     NOT NULL REFERENCES accounts (id),
            to_account_id   VARCHAR(64)     NOT NULL REFERENCES accounts (id),
            amount          NUMERIC(14, 2)  NOT NULL,
            doc_number      VARCHAR(64),
            doc_date        DATE            NOT NULL,
            created_by      VARCHAR(64)     NOT NULL,
            idempotency_key VARCHAR(128)    NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payment_documents_key UNIQUE (idempotency_key),
            CONSTRAINT ck_payment_documents_amount CHECK (amount > 0),
            CONSTRAINT ck_payment_documents_distinct CHECK (from_account_id <> to_account_id)
        );
    """)

    op.execute("""
        CREATE TABLE bank_deposits (
            id              VARCHAR(64)     PRIMARY KEY,
            account_id      VARCHAR(64)     NOT NULL REFERENCES accounts (id),
            doc_number      VARCHAR(64)     NOT NULL,
            bank_name       VARCHAR(120)    NOT NULL,
            amount          NUMERIC(14, 2)  NOT NULL,
            deposit_date    DATE            NOT NULL,
            created_by      VARCHAR(64)     NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_bank_deposits_amount CHECK (amount > 0)
        );
    """)
    op.execute("CREATE INDEX idx_bank_deposits_account ON bank_deposits (account_id, deposit_date);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bank_deposits CASCADE;")
    op.execute("DROP TABLE IF EXISTS payment_documents CASCADE;")
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
    op.execute("DROP TABLE IF EXISTS accounts CASCADE;")
