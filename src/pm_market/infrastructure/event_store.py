"""Persist market events to, and read them back from, the market_events table.

Rows are appended while the market row is locked, so ``id`` order is the
per-market emission order.
"""
import json

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.enums import MarketEventType
from src.pm_market.domain.events import MarketEvent

_INSERT_EVENT_SQL = text("""
    INSERT INTO market_events (
        market_id, market_address, event_type, payload, occurred_at
    ) VALUES (
        :market_id, :market_address, :event_type, CAST(:payload AS JSONB), :occurred_at
    )
""")

_LIST_EVENTS_SQL = text("""
    SELECT market_address, event_type, payload, occurred_at
    FROM market_events
    WHERE market_id = :market_id
    ORDER BY id
""")


async def write_market_events(
    market_id: int,
    events: list[MarketEvent],
    db: AsyncSession,
) -> int:
    """Insert one row per event, in emission order. Returns rows written."""
    for event in events:
        await db.execute(
            _INSERT_EVENT_SQL,
            {
                "market_id": market_id,
                "market_address": event.market_address,
                "event_type": event.event_type.value,
                "payload": json.dumps(event.payload, sort_keys=True),
                "occurred_at": event.occurred_at,
            },
        )
    return len(events)


async def read_market_events(market_id: int, db: AsyncSession) -> list[MarketEvent]:
    result = await db.execute(_LIST_EVENTS_SQL, {"market_id": market_id})
    events = []
    for row in result.fetchall():
        payload = row.payload
        # asyncpg hands JSONB back as text unless a codec is registered
        if isinstance(payload, str):
            payload = json.loads(payload)
        events.append(
            MarketEvent(
                market_address=row.market_address,
                event_type=MarketEventType(row.event_type),
                occurred_at=row.occurred_at,
                payload=payload,
            )
        )
    return events
