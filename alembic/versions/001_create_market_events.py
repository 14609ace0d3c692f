"""001: create market_events table

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE market_events (
            id                  BIGSERIAL       PRIMARY KEY,
            market_id           BIGINT          NOT NULL,
            market_address      VARCHAR(64)     NOT NULL,
            event_type          VARCHAR(20)     NOT NULL,
            payload             JSONB           NOT NULL DEFAULT '{}'::jsonb,
            occurred_at         TIMESTAMPTZ     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_market_events_type CHECK (
                event_type IN (
                    'INITIALIZED', 'STAKE_PLACED', 'STATUS_CHANGED',
                    'RESOLVED', 'CANCELLED', 'CLAIMED'
                )
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_market_events_market ON market_events (market_id, id);"
    )
    op.execute(
        "CREATE INDEX idx_market_events_type ON market_events (event_type, occurred_at);"
    )
    op.execute("COMMENT ON TABLE market_events IS 'Append-only market history feed for indexers';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_events CASCADE;")
