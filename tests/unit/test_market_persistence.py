# tests/unit/test_market_persistence.py
"""Unit tests for MarketRepository using MagicMock AsyncSession."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.pm_common.enums import CustodyDirection, MarketStatus, Outcome
from src.pm_market.domain.models import CustodyMovement, MarketConfig, MarketState, Position
from src.pm_registry.domain.models import RegistryState, StoredMarket
from src.pm_registry.infrastructure.persistence import MarketRepository
from tests.conftest import START


def _make_market_row(**kwargs):
    """Build a mock DB row with all required fields."""
    row = MagicMock()
    row.id = kwargs.get("id", 0)
    row.address = kwargs.get("address", "mkt_0000")
    row.creator = kwargs.get("creator", "alice")
    row.category = kwargs.get("category", "crypto")
    row.created_at = START
    row.reported_volume = kwargs.get("reported_volume", 150)
    row.question = "Will BTC close above 100k?"
    row.description = ""
    row.resolver = "oracle"
    row.end_time = START + timedelta(days=7)
    row.min_stake = 1
    row.max_stake = 1000
    row.status = kwargs.get("status", "ACTIVE")
    row.paused = kwargs.get("paused", False)
    row.outcome = kwargs.get("outcome")
    row.resolved_at = None
    row.cancelled_at = None
    row.cancel_reason = None
    row.yes_pool = 100
    row.no_pool = 50
    row.total_volume = 150
    row.stake_count = 2
    row.participant_count = 2
    row.yes_shares_outstanding = 100
    row.no_shares_outstanding = 50
    row.settled_pool = kwargs.get("settled_pool")
    row.settled_yes_shares = kwargs.get("settled_yes_shares")
    row.settled_no_shares = kwargs.get("settled_no_shares")
    return row


def _make_registry_row(**kwargs):
    row = MagicMock()
    row.paused = kwargs.get("paused", False)
    row.require_authorization = kwargs.get("require_authorization", True)
    row.creation_fee = 5
    row.min_duration_seconds = 3600
    row.max_duration_seconds = 86400
    row.collected_fees = 10
    row.market_count = 2
    return row


def _result(*, one=None, rows=None, scalar=None):
    result = MagicMock()
    result.fetchone.return_value = one
    result.fetchall.return_value = rows or []
    result.scalar_one.return_value = scalar
    return result


def _stored() -> StoredMarket:
    config = MarketConfig(
        "Will BTC close above 100k?", "", START + timedelta(days=7), "oracle", 1, 1000
    )
    return StoredMarket(
        market_id=3,
        creator="alice",
        category="crypto",
        created_at=START,
        total_volume=40,
        state=MarketState(address="mkt_0003", config=config, paused=True, yes_pool=40),
    )


def _sql(call) -> str:
    return call.args[0].text


@pytest.fixture
def db():
    return MagicMock()


class TestGetMarket:
    @pytest.mark.asyncio
    async def test_returns_stored_market_when_found(self, db):
        row = _make_market_row(
            id=4, status="RESOLVED", outcome="YES",
            settled_pool=150, settled_yes_shares=100, settled_no_shares=50,
        )
        db.execute = AsyncMock(return_value=_result(one=row))

        stored = await MarketRepository().get_market(db, 4)

        assert stored is not None
        assert stored.market_id == 4
        assert stored.total_volume == 150
        assert stored.state.status == MarketStatus.RESOLVED
        assert stored.state.outcome == Outcome.YES
        assert stored.state.config.resolver == "oracle"
        assert stored.state.settled_pool == 150

    @pytest.mark.asyncio
    async def test_returns_none_when_not_found(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await MarketRepository().get_market(db, 99) is None

    @pytest.mark.asyncio
    async def test_for_update_locks_row(self, db):
        db.execute = AsyncMock(return_value=_result(one=_make_market_row()))

        await MarketRepository().get_market(db, 0, for_update=True)
        assert "FOR UPDATE" in _sql(db.execute.call_args)

        await MarketRepository().get_market(db, 0)
        assert "FOR UPDATE" not in _sql(db.execute.call_args)


class TestWriteMarket:
    @pytest.mark.asyncio
    async def test_insert_params(self, db):
        db.execute = AsyncMock()
        await MarketRepository().insert_market(db, _stored())

        params = db.execute.call_args.args[1]
        assert "INSERT INTO markets" in _sql(db.execute.call_args)
        assert params["id"] == 3
        assert params["status"] == "ACTIVE"
        assert params["paused"] is True
        assert params["outcome"] is None
        assert params["reported_volume"] == 40
        assert params["settled_pool"] is None

    @pytest.mark.asyncio
    async def test_save_updates_row(self, db):
        db.execute = AsyncMock()
        await MarketRepository().save_market(db, _stored())
        assert "UPDATE markets" in _sql(db.execute.call_args)
        assert db.execute.call_args.args[1]["yes_pool"] == 40

    @pytest.mark.asyncio
    async def test_save_positions_upserts_each(self, db):
        db.execute = AsyncMock()
        positions = [
            Position("bob", yes_shares=10, total_staked=10),
            Position("carol", claimed=True),
        ]

        await MarketRepository().save_positions(db, 3, positions)

        assert db.execute.await_count == 2
        params = db.execute.call_args_list[1].args[1]
        assert params == {
            "market_id": 3, "participant": "carol", "yes_shares": 0,
            "no_shares": 0, "total_staked": 0, "claimed": True,
        }


class TestPositions:
    @pytest.mark.asyncio
    async def test_maps_rows(self, db):
        row = MagicMock()
        row.participant = "bob"
        row.yes_shares = 100
        row.no_shares = 0
        row.total_staked = 100
        row.claimed = False
        db.execute = AsyncMock(return_value=_result(rows=[row]))

        positions = await MarketRepository().get_positions(db, 0, ["bob"])

        assert positions == [Position("bob", yes_shares=100, total_staked=100)]
        assert db.execute.call_args.args[1] == {"market_id": 0, "participants": ["bob"]}

    @pytest.mark.asyncio
    async def test_no_participants_skips_query(self, db):
        db.execute = AsyncMock()
        assert await MarketRepository().get_positions(db, 0, []) == []
        db.execute.assert_not_awaited()


class TestCustody:
    @pytest.mark.asyncio
    async def test_fee_pool_balance_passes_null_market(self, db):
        db.execute = AsyncMock(return_value=_result(scalar=12))

        assert await MarketRepository().custody_balance(db, None) == 12
        assert db.execute.call_args.args[1] == {"market_id": None}

    @pytest.mark.asyncio
    async def test_append_movements(self, db):
        db.execute = AsyncMock()
        movements = [CustodyMovement(0, "bob", CustodyDirection.OUT, 30)]

        await MarketRepository().append_custody(db, movements)

        assert db.execute.call_args.args[1] == {
            "market_id": 0, "account": "bob", "direction": "OUT", "amount": 30,
        }


class TestRegistryState:
    @pytest.mark.asyncio
    async def test_defaults_when_row_missing(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        defaults = RegistryState(owner="owner", creation_fee=3, authorized_creators={"alice"})

        state = await MarketRepository().get_registry_state(db, defaults)

        assert state == defaults
        assert state is not defaults
        state.authorized_creators.add("bob")
        assert defaults.authorized_creators == {"alice"}
        db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_for_update_seeds_missing_row(self, db):
        creator = MagicMock()
        creator.creator = "alice"
        db.execute = AsyncMock(side_effect=[
            _result(one=None),
            _result(),
            _result(one=_make_registry_row()),
            _result(rows=[creator]),
        ])

        state = await MarketRepository().get_registry_state(
            db, RegistryState(owner="owner"), for_update=True
        )

        calls = db.execute.call_args_list
        assert "FOR UPDATE" in _sql(calls[0])
        assert "INSERT INTO registry_state" in _sql(calls[1])
        assert state.owner == "owner"
        assert state.require_authorization is True
        assert state.min_duration == timedelta(hours=1)
        assert state.market_count == 2
        assert state.authorized_creators == {"alice"}

    @pytest.mark.asyncio
    async def test_save_rewrites_creator_list(self, db):
        db.execute = AsyncMock()
        state = RegistryState(owner="owner", authorized_creators={"carol", "bob"})

        await MarketRepository().save_registry_state(db, state)

        calls = db.execute.call_args_list
        assert calls[0].args[1]["max_duration_seconds"] == 365 * 86400
        assert [c.args[1]["creator"] for c in calls[2:]] == ["bob", "carol"]


class TestListings:
    @pytest.mark.asyncio
    async def test_list_markets_passes_filters_and_total(self, db):
        db.execute = AsyncMock(side_effect=[
            _result(scalar=5),
            _result(rows=[_make_market_row(id=1, paused=True)]),
        ])

        stored, total = await MarketRepository().list_markets(
            db, 0, 1, category="crypto", status=MarketStatus.PAUSED
        )

        assert total == 5
        assert stored[0].state.paused is True
        params = db.execute.call_args_list[1].args[1]
        assert params == {"category": "crypto", "status": "PAUSED", "offset": 0, "limit": 1}

    @pytest.mark.asyncio
    async def test_creator_stats_skip_paused_and_terminal(self, db):
        rows = []
        for market_id, status, paused, volume in [
            (0, "ACTIVE", False, 40), (2, "ACTIVE", True, 10), (5, "CANCELLED", False, 60),
        ]:
            row = MagicMock()
            row.id, row.status, row.paused, row.reported_volume = market_id, status, paused, volume
            rows.append(row)
        db.execute = AsyncMock(return_value=_result(rows=rows))

        stats = await MarketRepository().creator_stats(db, "alice")

        assert stats.markets_created == 3
        assert stats.active_markets == 1
        assert stats.total_volume == 110
        assert stats.market_ids == [0, 2, 5]

    @pytest.mark.asyncio
    async def test_platform_stats(self, db):
        row = MagicMock()
        row.total_markets = 3
        row.active_markets = 2
        row.total_volume = 105
        row.unique_creators = 2
        db.execute = AsyncMock(return_value=_result(one=row))

        stats = await MarketRepository().platform_stats(db)

        assert stats.total_markets == 3
        assert stats.total_volume == 105

    @pytest.mark.asyncio
    async def test_categories(self, db):
        rows = []
        for name in ("crypto", "sports"):
            row = MagicMock()
            row.category = name
            rows.append(row)
        db.execute = AsyncMock(return_value=_result(rows=rows))
        assert await MarketRepository().list_categories(db) == ["crypto", "sports"]
