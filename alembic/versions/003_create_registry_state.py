"""003: create registry_state, registry_authorized_creators, custody_movements

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Single row (id = 1), seeded from settings on the first registry write
    op.execute("""
        CREATE TABLE registry_state (
            id                      SMALLINT        PRIMARY KEY DEFAULT 1,
            paused                  BOOLEAN         NOT NULL DEFAULT FALSE,
            require_authorization   BOOLEAN         NOT NULL DEFAULT FALSE,
            creation_fee            BIGINT          NOT NULL DEFAULT 0,
            min_duration_seconds    BIGINT          NOT NULL,
            max_duration_seconds    BIGINT          NOT NULL,
            collected_fees          BIGINT          NOT NULL DEFAULT 0,
            market_count            BIGINT          NOT NULL DEFAULT 0,
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_registry_state_single_row CHECK (id = 1),
            CONSTRAINT ck_registry_state_durations CHECK (
                min_duration_seconds < max_duration_seconds
            ),
            CONSTRAINT ck_registry_state_non_negative CHECK (
                creation_fee >= 0 AND collected_fees >= 0 AND market_count >= 0
            )
        );
    """)

    op.execute("""
        CREATE TABLE registry_authorized_creators (
            creator             VARCHAR(128)    PRIMARY KEY,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)

    # market_id NULL is the registry fee pool
    op.execute("""
        CREATE TABLE custody_movements (
            id                  BIGSERIAL       PRIMARY KEY,
            market_id           BIGINT          REFERENCES markets (id),
            account             VARCHAR(128)    NOT NULL,
            direction           VARCHAR(3)      NOT NULL,
            amount              BIGINT          NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_custody_movements_direction CHECK (direction IN ('IN', 'OUT')),
            CONSTRAINT ck_custody_movements_amount CHECK (amount > 0)
        );
    """)
    op.execute(
        "CREATE INDEX idx_custody_movements_market ON custody_movements (market_id, id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS custody_movements CASCADE;")
    op.execute("DROP TABLE IF EXISTS registry_authorized_creators CASCADE;")
    op.execute("DROP TABLE IF EXISTS registry_state CASCADE;")
