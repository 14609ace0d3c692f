"""002: create markets and market_positions tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id                      BIGINT          PRIMARY KEY,
            address                 VARCHAR(64)     NOT NULL,
            creator                 VARCHAR(128)    NOT NULL,
            category                VARCHAR(64)     NOT NULL,
            created_at              TIMESTAMPTZ     NOT NULL,
            reported_volume         BIGINT          NOT NULL DEFAULT 0,
            question                VARCHAR(500)    NOT NULL,
            description             TEXT            NOT NULL DEFAULT '',
            resolver                VARCHAR(128)    NOT NULL,
            end_time                TIMESTAMPTZ     NOT NULL,
            min_stake               BIGINT          NOT NULL,
            max_stake               BIGINT          NOT NULL,
            status                  VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            paused                  BOOLEAN         NOT NULL DEFAULT FALSE,
            outcome                 VARCHAR(3),
            resolved_at             TIMESTAMPTZ,
            cancelled_at            TIMESTAMPTZ,
            cancel_reason           TEXT,
            yes_pool                BIGINT          NOT NULL DEFAULT 0,
            no_pool                 BIGINT          NOT NULL DEFAULT 0,
            total_volume            BIGINT          NOT NULL DEFAULT 0,
            stake_count             BIGINT          NOT NULL DEFAULT 0,
            participant_count       BIGINT          NOT NULL DEFAULT 0,
            yes_shares_outstanding  BIGINT          NOT NULL DEFAULT 0,
            no_shares_outstanding   BIGINT          NOT NULL DEFAULT 0,
            settled_pool            BIGINT,
            settled_yes_shares      BIGINT,
            settled_no_shares       BIGINT,
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_markets_address UNIQUE (address),
            CONSTRAINT ck_markets_status CHECK (
                status IN ('ACTIVE', 'RESOLVED', 'CANCELLED')
            ),
            CONSTRAINT ck_markets_outcome CHECK (
                outcome IS NULL OR outcome IN ('YES', 'NO')
            ),
            CONSTRAINT ck_markets_resolved_outcome CHECK (
                status != 'RESOLVED' OR outcome IS NOT NULL
            ),
            CONSTRAINT ck_markets_stake_limits CHECK (
                min_stake > 0 AND min_stake <= max_stake
            ),
            CONSTRAINT ck_markets_pools CHECK (
                yes_pool >= 0 AND no_pool >= 0
                AND yes_shares_outstanding >= 0 AND no_shares_outstanding >= 0
            ),
            CONSTRAINT ck_markets_settlement CHECK (
                status = 'ACTIVE' OR settled_pool IS NOT NULL
            )
        );
    """)
    op.execute("CREATE INDEX idx_markets_category ON markets (category, id);")
    op.execute("CREATE INDEX idx_markets_creator ON markets (creator, id);")
    op.execute("CREATE INDEX idx_markets_volume ON markets (reported_volume DESC, id);")

    op.execute("""
        CREATE TABLE market_positions (
            market_id           BIGINT          NOT NULL REFERENCES markets (id),
            participant         VARCHAR(128)    NOT NULL,
            yes_shares          BIGINT          NOT NULL DEFAULT 0,
            no_shares           BIGINT          NOT NULL DEFAULT 0,
            total_staked        BIGINT          NOT NULL DEFAULT 0,
            claimed             BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_market_positions PRIMARY KEY (market_id, participant),
            CONSTRAINT ck_market_positions_non_negative CHECK (
                yes_shares >= 0 AND no_shares >= 0 AND total_staked >= 0
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_market_positions_participant ON market_positions (participant);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_positions CASCADE;")
    op.execute("DROP TABLE IF EXISTS markets CASCADE;")
