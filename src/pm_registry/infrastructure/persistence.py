"""MarketRepository — concrete implementation of MarketRepositoryProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
Nothing here commits; the application service owns the transaction.
"""

from dataclasses import replace
from datetime import timedelta

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.enums import MarketStatus, Outcome
from src.pm_market.domain.events import MarketEvent
from src.pm_market.domain.models import CustodyMovement, MarketConfig, MarketState, Position
from src.pm_market.infrastructure.event_store import read_market_events, write_market_events
from src.pm_registry.domain.models import (
    CreatorStats,
    PlatformStats,
    RegistryState,
    StoredMarket,
)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_REGISTRY_STATE_COLUMNS = """
    paused, require_authorization, creation_fee,
    min_duration_seconds, max_duration_seconds, collected_fees, market_count
"""

_GET_REGISTRY_STATE_SQL = text(f"""
    SELECT {_REGISTRY_STATE_COLUMNS}
    FROM registry_state
    WHERE id = 1
""")

_LOCK_REGISTRY_STATE_SQL = text(f"""
    SELECT {_REGISTRY_STATE_COLUMNS}
    FROM registry_state
    WHERE id = 1
    FOR UPDATE
""")

_SEED_REGISTRY_STATE_SQL = text("""
    INSERT INTO registry_state (
        id, paused, require_authorization, creation_fee,
        min_duration_seconds, max_duration_seconds, collected_fees, market_count
    ) VALUES (
        1, :paused, :require_authorization, :creation_fee,
        :min_duration_seconds, :max_duration_seconds, :collected_fees, :market_count
    )
    ON CONFLICT (id) DO NOTHING
""")

_UPDATE_REGISTRY_STATE_SQL = text("""
    UPDATE registry_state
    SET paused = :paused,
        require_authorization = :require_authorization,
        creation_fee = :creation_fee,
        min_duration_seconds = :min_duration_seconds,
        max_duration_seconds = :max_duration_seconds,
        collected_fees = :collected_fees,
        market_count = :market_count,
        updated_at = NOW()
    WHERE id = 1
""")

_LIST_AUTHORIZED_CREATORS_SQL = text("""
    SELECT creator FROM registry_authorized_creators ORDER BY creator
""")

_CLEAR_AUTHORIZED_CREATORS_SQL = text("""
    DELETE FROM registry_authorized_creators
""")

_INSERT_AUTHORIZED_CREATOR_SQL = text("""
    INSERT INTO registry_authorized_creators (creator) VALUES (:creator)
""")

_MARKET_COLUMNS = """
    id, address, creator, category, created_at, reported_volume,
    question, description, resolver, end_time, min_stake, max_stake,
    status, paused, outcome, resolved_at, cancelled_at, cancel_reason,
    yes_pool, no_pool, total_volume, stake_count, participant_count,
    yes_shares_outstanding, no_shares_outstanding,
    settled_pool, settled_yes_shares, settled_no_shares
"""

# Listing status: a paused ACTIVE market is listed as PAUSED
_MARKET_FILTER = """
    (CAST(:category AS TEXT) IS NULL OR category = CAST(:category AS TEXT))
    AND (
        CAST(:status AS TEXT) IS NULL
        OR (CASE WHEN status = 'ACTIVE' AND paused THEN 'PAUSED' ELSE status END)
            = CAST(:status AS TEXT)
    )
"""

_GET_MARKET_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
""")

_LOCK_MARKET_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
    FOR UPDATE
""")

_INSERT_MARKET_SQL = text("""
    INSERT INTO markets (
        id, address, creator, category, created_at, reported_volume,
        question, description, resolver, end_time, min_stake, max_stake,
        status, paused, outcome, resolved_at, cancelled_at, cancel_reason,
        yes_pool, no_pool, total_volume, stake_count, participant_count,
        yes_shares_outstanding, no_shares_outstanding,
        settled_pool, settled_yes_shares, settled_no_shares
    ) VALUES (
        :id, :address, :creator, :category, :created_at, :reported_volume,
        :question, :description, :resolver, :end_time, :min_stake, :max_stake,
        :status, :paused, :outcome, :resolved_at, :cancelled_at, :cancel_reason,
        :yes_pool, :no_pool, :total_volume, :stake_count, :participant_count,
        :yes_shares_outstanding, :no_shares_outstanding,
        :settled_pool, :settled_yes_shares, :settled_no_shares
    )
""")

# Configuration columns are immutable after creation and never updated
_UPDATE_MARKET_SQL = text("""
    UPDATE markets
    SET reported_volume = :reported_volume,
        status = :status,
        paused = :paused,
        outcome = :outcome,
        resolved_at = :resolved_at,
        cancelled_at = :cancelled_at,
        cancel_reason = :cancel_reason,
        yes_pool = :yes_pool,
        no_pool = :no_pool,
        total_volume = :total_volume,
        stake_count = :stake_count,
        participant_count = :participant_count,
        yes_shares_outstanding = :yes_shares_outstanding,
        no_shares_outstanding = :no_shares_outstanding,
        settled_pool = :settled_pool,
        settled_yes_shares = :settled_yes_shares,
        settled_no_shares = :settled_no_shares,
        updated_at = NOW()
    WHERE id = :id
""")

_GET_POSITIONS_SQL = text("""
    SELECT participant, yes_shares, no_shares, total_staked, claimed
    FROM market_positions
    WHERE market_id = :market_id AND participant = ANY(:participants)
""")

_UPSERT_POSITION_SQL = text("""
    INSERT INTO market_positions (
        market_id, participant, yes_shares, no_shares, total_staked, claimed
    ) VALUES (
        :market_id, :participant, :yes_shares, :no_shares, :total_staked, :claimed
    )
    ON CONFLICT (market_id, participant) DO UPDATE
    SET yes_shares = EXCLUDED.yes_shares,
        no_shares = EXCLUDED.no_shares,
        total_staked = EXCLUDED.total_staked,
        claimed = EXCLUDED.claimed,
        updated_at = NOW()
""")

_CUSTODY_BALANCE_SQL = text("""
    SELECT COALESCE(SUM(CASE WHEN direction = 'IN' THEN amount ELSE -amount END), 0)
    FROM custody_movements
    WHERE market_id IS NOT DISTINCT FROM CAST(:market_id AS BIGINT)
""")

_INSERT_CUSTODY_SQL = text("""
    INSERT INTO custody_movements (market_id, account, direction, amount)
    VALUES (:market_id, :account, :direction, :amount)
""")

_LIST_MARKETS_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE {_MARKET_FILTER}
    ORDER BY id
    OFFSET :offset
    LIMIT :limit
""")

_COUNT_MARKETS_SQL = text(f"""
    SELECT COUNT(*)
    FROM markets
    WHERE {_MARKET_FILTER}
""")

_LIST_CATEGORIES_SQL = text("""
    SELECT category
    FROM markets
    GROUP BY category
    ORDER BY MIN(id)
""")

_CREATOR_MARKETS_SQL = text("""
    SELECT id, status, paused, reported_volume
    FROM markets
    WHERE creator = :creator
    ORDER BY id
""")

_PLATFORM_STATS_SQL = text("""
    SELECT COUNT(*) AS total_markets,
           COUNT(*) FILTER (WHERE status = 'ACTIVE' AND NOT paused) AS active_markets,
           COALESCE(SUM(reported_volume), 0) AS total_volume,
           COUNT(DISTINCT creator) AS unique_creators
    FROM markets
""")

_TOP_MARKETS_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    ORDER BY reported_volume DESC, id
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_registry_state(row: object, owner: str, creators: set[str]) -> RegistryState:
    return RegistryState(
        owner=owner,
        paused=row.paused,  # type: ignore[attr-defined]
        require_authorization=row.require_authorization,  # type: ignore[attr-defined]
        creation_fee=row.creation_fee,  # type: ignore[attr-defined]
        min_duration=timedelta(seconds=row.min_duration_seconds),  # type: ignore[attr-defined]
        max_duration=timedelta(seconds=row.max_duration_seconds),  # type: ignore[attr-defined]
        collected_fees=row.collected_fees,  # type: ignore[attr-defined]
        market_count=row.market_count,  # type: ignore[attr-defined]
        authorized_creators=creators,
    )


def _row_to_stored(row: object) -> StoredMarket:
    outcome = row.outcome  # type: ignore[attr-defined]
    state = MarketState(
        address=row.address,  # type: ignore[attr-defined]
        config=MarketConfig(
            question=row.question,  # type: ignore[attr-defined]
            description=row.description,  # type: ignore[attr-defined]
            end_time=row.end_time,  # type: ignore[attr-defined]
            resolver=row.resolver,  # type: ignore[attr-defined]
            min_stake=row.min_stake,  # type: ignore[attr-defined]
            max_stake=row.max_stake,  # type: ignore[attr-defined]
        ),
        status=MarketStatus(row.status),  # type: ignore[attr-defined]
        paused=row.paused,  # type: ignore[attr-defined]
        outcome=Outcome(outcome) if outcome else None,
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
        cancelled_at=row.cancelled_at,  # type: ignore[attr-defined]
        cancel_reason=row.cancel_reason,  # type: ignore[attr-defined]
        yes_pool=row.yes_pool,  # type: ignore[attr-defined]
        no_pool=row.no_pool,  # type: ignore[attr-defined]
        total_volume=row.total_volume,  # type: ignore[attr-defined]
        stake_count=row.stake_count,  # type: ignore[attr-defined]
        participant_count=row.participant_count,  # type: ignore[attr-defined]
        yes_shares_outstanding=row.yes_shares_outstanding,  # type: ignore[attr-defined]
        no_shares_outstanding=row.no_shares_outstanding,  # type: ignore[attr-defined]
        settled_pool=row.settled_pool,  # type: ignore[attr-defined]
        settled_yes_shares=row.settled_yes_shares,  # type: ignore[attr-defined]
        settled_no_shares=row.settled_no_shares,  # type: ignore[attr-defined]
    )
    return StoredMarket(
        market_id=row.id,  # type: ignore[attr-defined]
        creator=row.creator,  # type: ignore[attr-defined]
        category=row.category,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        total_volume=row.reported_volume,  # type: ignore[attr-defined]
        state=state,
    )


def _row_to_position(row: object) -> Position:
    return Position(
        participant=row.participant,  # type: ignore[attr-defined]
        yes_shares=row.yes_shares,  # type: ignore[attr-defined]
        no_shares=row.no_shares,  # type: ignore[attr-defined]
        total_staked=row.total_staked,  # type: ignore[attr-defined]
        claimed=row.claimed,  # type: ignore[attr-defined]
    )


def _registry_params(state: RegistryState) -> dict:
    return {
        "paused": state.paused,
        "require_authorization": state.require_authorization,
        "creation_fee": state.creation_fee,
        "min_duration_seconds": int(state.min_duration.total_seconds()),
        "max_duration_seconds": int(state.max_duration.total_seconds()),
        "collected_fees": state.collected_fees,
        "market_count": state.market_count,
    }


def _market_params(stored: StoredMarket) -> dict:
    s = stored.state
    return {
        "id": stored.market_id,
        "address": s.address,
        "creator": stored.creator,
        "category": stored.category,
        "created_at": stored.created_at,
        "reported_volume": stored.total_volume,
        "question": s.config.question,
        "description": s.config.description,
        "resolver": s.config.resolver,
        "end_time": s.config.end_time,
        "min_stake": s.config.min_stake,
        "max_stake": s.config.max_stake,
        "status": s.status.value,
        "paused": s.paused,
        "outcome": s.outcome.value if s.outcome else None,
        "resolved_at": s.resolved_at,
        "cancelled_at": s.cancelled_at,
        "cancel_reason": s.cancel_reason,
        "yes_pool": s.yes_pool,
        "no_pool": s.no_pool,
        "total_volume": s.total_volume,
        "stake_count": s.stake_count,
        "participant_count": s.participant_count,
        "yes_shares_outstanding": s.yes_shares_outstanding,
        "no_shares_outstanding": s.no_shares_outstanding,
        "settled_pool": s.settled_pool,
        "settled_yes_shares": s.settled_yes_shares,
        "settled_no_shares": s.settled_no_shares,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MarketRepository:
    """Concrete repository over registry_state, markets, market_positions,
    market_events and custody_movements."""

    # --- registry state ---

    async def get_registry_state(
        self, db: AsyncSession, defaults: RegistryState, *, for_update: bool = False
    ) -> RegistryState:
        sql = _LOCK_REGISTRY_STATE_SQL if for_update else _GET_REGISTRY_STATE_SQL
        row = (await db.execute(sql)).fetchone()
        if row is None:
            if not for_update:
                return replace(defaults, authorized_creators=set(defaults.authorized_creators))
            await db.execute(_SEED_REGISTRY_STATE_SQL, _registry_params(defaults))
            row = (await db.execute(sql)).fetchone()
        creators = (await db.execute(_LIST_AUTHORIZED_CREATORS_SQL)).fetchall()
        # the owner is configuration, not stored state
        return _row_to_registry_state(row, defaults.owner, {r.creator for r in creators})

    async def save_registry_state(self, db: AsyncSession, state: RegistryState) -> None:
        await db.execute(_UPDATE_REGISTRY_STATE_SQL, _registry_params(state))
        await db.execute(_CLEAR_AUTHORIZED_CREATORS_SQL)
        for creator in sorted(state.authorized_creators):
            await db.execute(_INSERT_AUTHORIZED_CREATOR_SQL, {"creator": creator})

    # --- markets and positions ---

    async def insert_market(self, db: AsyncSession, stored: StoredMarket) -> None:
        await db.execute(_INSERT_MARKET_SQL, _market_params(stored))

    async def get_market(
        self, db: AsyncSession, market_id: int, *, for_update: bool = False
    ) -> StoredMarket | None:
        sql = _LOCK_MARKET_SQL if for_update else _GET_MARKET_SQL
        result = await db.execute(sql, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_stored(row) if row else None

    async def save_market(self, db: AsyncSession, stored: StoredMarket) -> None:
        await db.execute(_UPDATE_MARKET_SQL, _market_params(stored))

    async def get_positions(
        self, db: AsyncSession, market_id: int, participants: list[str]
    ) -> list[Position]:
        if not participants:
            return []
        result = await db.execute(
            _GET_POSITIONS_SQL, {"market_id": market_id, "participants": participants}
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def save_positions(
        self, db: AsyncSession, market_id: int, positions: list[Position]
    ) -> None:
        for p in positions:
            await db.execute(
                _UPSERT_POSITION_SQL,
                {
                    "market_id": market_id,
                    "participant": p.participant,
                    "yes_shares": p.yes_shares,
                    "no_shares": p.no_shares,
                    "total_staked": p.total_staked,
                    "claimed": p.claimed,
                },
            )

    # --- event feed ---

    async def append_events(
        self, db: AsyncSession, market_id: int, events: list[MarketEvent]
    ) -> None:
        await write_market_events(market_id, events, db)

    async def list_events(self, db: AsyncSession, market_id: int) -> list[MarketEvent]:
        return await read_market_events(market_id, db)

    # --- custody ---

    async def custody_balance(self, db: AsyncSession, market_id: int | None) -> int:
        result = await db.execute(_CUSTODY_BALANCE_SQL, {"market_id": market_id})
        return int(result.scalar_one())

    async def append_custody(self, db: AsyncSession, movements: list[CustodyMovement]) -> None:
        for m in movements:
            await db.execute(
                _INSERT_CUSTODY_SQL,
                {
                    "market_id": m.market_id,
                    "account": m.account,
                    "direction": m.direction.value,
                    "amount": m.amount,
                },
            )

    # --- listings and aggregates ---

    async def list_markets(
        self,
        db: AsyncSession,
        offset: int,
        limit: int,
        category: str | None = None,
        status: MarketStatus | None = None,
    ) -> tuple[list[StoredMarket], int]:
        filters = {"category": category, "status": status.value if status else None}
        count = await db.execute(_COUNT_MARKETS_SQL, filters)
        total = int(count.scalar_one())
        result = await db.execute(_LIST_MARKETS_SQL, {**filters, "offset": offset, "limit": limit})
        return [_row_to_stored(row) for row in result.fetchall()], total

    async def list_categories(self, db: AsyncSession) -> list[str]:
        result = await db.execute(_LIST_CATEGORIES_SQL)
        return [row.category for row in result.fetchall()]

    async def creator_stats(self, db: AsyncSession, creator: str) -> CreatorStats:
        result = await db.execute(_CREATOR_MARKETS_SQL, {"creator": creator})
        rows = result.fetchall()
        return CreatorStats(
            creator=creator,
            markets_created=len(rows),
            active_markets=sum(1 for r in rows if r.status == "ACTIVE" and not r.paused),
            total_volume=sum(r.reported_volume for r in rows),
            market_ids=[r.id for r in rows],
        )

    async def platform_stats(self, db: AsyncSession) -> PlatformStats:
        row = (await db.execute(_PLATFORM_STATS_SQL)).fetchone()
        return PlatformStats(
            total_markets=row.total_markets,  # type: ignore[union-attr]
            active_markets=row.active_markets,  # type: ignore[union-attr]
            total_volume=int(row.total_volume),  # type: ignore[union-attr]
            unique_creators=row.unique_creators,  # type: ignore[union-attr]
        )

    async def top_markets(self, db: AsyncSession, limit: int) -> list[StoredMarket]:
        result = await db.execute(_TOP_MARKETS_SQL, {"limit": limit})
        return [_row_to_stored(row) for row in result.fetchall()]
