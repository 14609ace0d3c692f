"""Unit tests for the Market instance: init, staking, lifecycle, claims, events."""

import logging
import random
from datetime import timedelta

import pytest

from src.pm_common.enums import ClaimKind, MarketEventType, MarketStatus, Outcome
from src.pm_common.errors import (
    AlreadyClaimedError,
    AlreadyInitializedError,
    InternalError,
    InvalidMarketConfigError,
    MarketEndedError,
    MarketNotActiveError,
    MarketNotInitializedError,
    MarketNotSettleableError,
    MarketPausedError,
    NotFactoryError,
    NothingToClaimError,
    StakeOutOfRangeError,
    TooEarlyError,
    UnauthorizedResolverError,
    ValueMismatchError,
)
from src.pm_market.domain.market import Market
from src.pm_market.domain.models import MarketConfig, MarketState, Position
from src.pm_market.infrastructure.treasury import Treasury
from tests.conftest import START, FakeClock

FACTORY = "factory"
RESOLVER = "oracle"
END = START + timedelta(days=1)


def _config(**overrides) -> MarketConfig:
    fields = {
        "question": "Will it rain tomorrow?",
        "description": "Resolves YES on any measurable rain.",
        "end_time": END,
        "resolver": RESOLVER,
        "min_stake": 1,
        "max_stake": 10_000,
    }
    fields.update(overrides)
    return MarketConfig(**fields)


class RecordingReporter:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, int]] = []

    def report_volume(self, market_address: str, amount: int) -> None:
        self.calls.append((market_address, amount))
        if self.fail:
            raise RuntimeError("registry unavailable")


class FlakyTransfer:
    def __init__(self) -> None:
        self.fail = False
        self.sent: list[tuple[str, int]] = []

    def transfer(self, recipient: str, amount: int) -> None:
        if self.fail:
            raise RuntimeError("transfer rejected")
        self.sent.append((recipient, amount))


def _market(clock: FakeClock, reporter=None, transfer=None, **overrides) -> Market:
    market = Market(address="mkt_test", factory=FACTORY, clock=clock)
    market.initialize_once(
        _config(**overrides), caller=FACTORY, volume_reporter=reporter, value_transfer=transfer
    )
    return market


def _seed(market: Market) -> None:
    """alice 100 YES (100 sh), bob 100 NO (100 sh), carol 50 YES (34 sh)."""
    market.stake("alice", Outcome.YES, 100)
    market.stake("bob", Outcome.NO, 100)
    market.stake("carol", Outcome.YES, 50)


class TestInitialization:
    def test_initialize_sets_config(self, clock: FakeClock) -> None:
        market = _market(clock)
        assert market.is_initialized
        assert market.question == "Will it rain tomorrow?"
        assert market.resolver == RESOLVER
        assert market.end_time == END
        assert (market.min_stake, market.max_stake) == (1, 10_000)
        assert market.participant_count == 0
        assert market.status == MarketStatus.ACTIVE
        assert market.current_price() == 50

    def test_only_factory_may_initialize(self, clock: FakeClock) -> None:
        market = Market(address="mkt_test", factory=FACTORY, clock=clock)
        with pytest.raises(NotFactoryError):
            market.initialize_once(_config(), caller="someone")
        assert market.is_initialized is False

    def test_second_initialize_rejected(self, clock: FakeClock) -> None:
        market = _market(clock)
        with pytest.raises(AlreadyInitializedError):
            market.initialize_once(_config(question="Other?"), caller=FACTORY)
        with pytest.raises(AlreadyInitializedError):
            market.initialize_once(_config(), caller="someone")
        assert market.question == "Will it rain tomorrow?"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"question": "   "},
            {"end_time": START},
            {"end_time": START - timedelta(hours=1)},
            {"resolver": ""},
            {"min_stake": 0},
            {"min_stake": 500, "max_stake": 100},
        ],
    )
    def test_invalid_config_leaves_market_uninitialized(
        self, clock: FakeClock, overrides: dict
    ) -> None:
        market = Market(address="mkt_test", factory=FACTORY, clock=clock)
        with pytest.raises(InvalidMarketConfigError):
            market.initialize_once(_config(**overrides), caller=FACTORY)
        assert market.is_initialized is False
        assert market.events == []

    def test_operations_before_initialize_fail(self, clock: FakeClock) -> None:
        market = Market(address="mkt_test", factory=FACTORY, clock=clock)
        with pytest.raises(MarketNotInitializedError):
            market.stake("alice", Outcome.YES, 10)
        with pytest.raises(MarketNotInitializedError):
            market.resolve(RESOLVER, Outcome.YES)
        with pytest.raises(MarketNotInitializedError):
            market.claim("alice")
        with pytest.raises(MarketNotInitializedError):
            _ = market.status


class TestStake:
    def test_first_stake_on_empty_market(self, clock: FakeClock) -> None:
        market = _market(clock)
        receipt = market.stake("alice", Outcome.YES, 100)
        assert receipt.shares == 100
        assert receipt.price_after == 100
        assert (market.yes_pool, market.no_pool) == (100, 0)
        assert market.current_price() == 100

    def test_stake_on_balanced_pools(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.stake("bob", Outcome.NO, 100)
        receipt = market.stake("carol", Outcome.YES, 50)
        assert receipt.shares == 34
        assert (market.yes_pool, market.no_pool) == (150, 100)
        assert market.position("carol").yes_shares == 34

    def test_stake_aggregates(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        market.stake("alice", Outcome.NO, 10)
        assert market.total_volume == 260
        assert market.stake_count == 4
        assert [p.participant for p in market.loaded_positions()] == ["alice", "bob", "carol"]
        stats = market.stats()
        assert stats.participant_count == 3
        assert stats.yes_shares_outstanding == 134
        assert stats.total_volume == 260

    @pytest.mark.parametrize("amount", [0, -5, 10_001])
    def test_amount_outside_limits_rejected(self, clock: FakeClock, amount: int) -> None:
        market = _market(clock)
        with pytest.raises(StakeOutOfRangeError):
            market.stake("alice", Outcome.YES, amount)
        assert market.stake_count == 0

    def test_limits_are_inclusive(self, clock: FakeClock) -> None:
        market = _market(clock, min_stake=10, max_stake=20)
        market.stake("alice", Outcome.YES, 10)
        market.stake("alice", Outcome.YES, 20)
        assert market.yes_pool == 30

    def test_value_mismatch_rejected(self, clock: FakeClock) -> None:
        market = _market(clock)
        with pytest.raises(ValueMismatchError):
            market.stake("alice", Outcome.YES, 100, value_sent=99)
        assert market.yes_pool == 0
        assert market.loaded_positions() == []

    def test_stake_rejected_at_end_time(self, clock: FakeClock) -> None:
        market = _market(clock)
        clock.advance(days=1)
        with pytest.raises(MarketEndedError):
            market.stake("alice", Outcome.YES, 100)

    def test_stake_rejected_after_cancel(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.cancel(RESOLVER)
        with pytest.raises(MarketNotActiveError):
            market.stake("alice", Outcome.YES, 100)

    def test_quote_does_not_mutate(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.stake("bob", Outcome.NO, 100)
        q = market.quote(Outcome.YES, 50)
        assert q.shares == 34
        assert q.price_after == 60
        assert (market.yes_pool, market.no_pool) == (100, 100)


class TestVolumeReporting:
    def test_reporter_called_after_each_stake(self, clock: FakeClock) -> None:
        reporter = RecordingReporter()
        market = _market(clock, reporter=reporter)
        market.stake("alice", Outcome.YES, 100)
        market.stake("bob", Outcome.NO, 40)
        assert reporter.calls == [("mkt_test", 100), ("mkt_test", 40)]

    def test_rejected_stake_not_reported(self, clock: FakeClock) -> None:
        reporter = RecordingReporter()
        market = _market(clock, reporter=reporter)
        with pytest.raises(ValueMismatchError):
            market.stake("alice", Outcome.YES, 100, value_sent=1)
        assert reporter.calls == []

    def test_reporter_failure_does_not_undo_stake(
        self, clock: FakeClock, caplog: pytest.LogCaptureFixture
    ) -> None:
        reporter = RecordingReporter(fail=True)
        market = _market(clock, reporter=reporter)
        with caplog.at_level(logging.WARNING, logger="src.pm_market.domain.market"):
            receipt = market.stake("alice", Outcome.YES, 100)
        assert receipt.shares == 100
        assert market.yes_pool == 100
        assert market.events[-1].event_type == MarketEventType.STAKE_PLACED
        assert "Volume report ignored" in caplog.text


class TestResolveAndCancel:
    def test_resolve_after_end(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.YES)
        assert market.is_resolved
        assert market.outcome == Outcome.YES
        assert market.resolved_at == END

    def test_resolve_too_early(self, clock: FakeClock) -> None:
        market = _market(clock)
        clock.advance(hours=23)
        with pytest.raises(TooEarlyError):
            market.resolve(RESOLVER, Outcome.YES)

    def test_resolve_by_non_resolver(self, clock: FakeClock) -> None:
        market = _market(clock)
        clock.advance(days=2)
        with pytest.raises(UnauthorizedResolverError):
            market.resolve("alice", Outcome.YES)
        assert market.status == MarketStatus.ACTIVE

    def test_cancel_any_time(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.cancel(RESOLVER, reason="ambiguous question")
        assert market.is_cancelled
        assert market.cancel_reason == "ambiguous question"

    def test_no_second_terminal_transition(self, clock: FakeClock) -> None:
        market = _market(clock)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.NO)
        with pytest.raises(MarketNotActiveError):
            market.cancel(RESOLVER)
        with pytest.raises(MarketNotActiveError):
            market.resolve(RESOLVER, Outcome.YES)
        assert market.outcome == Outcome.NO


class TestClaim:
    def test_claim_while_active_rejected(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        with pytest.raises(MarketNotSettleableError):
            market.claim("alice")

    def test_resolved_payouts(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.YES)

        # pool 250, winning shares 100 + 34
        alice = market.claim("alice")
        carol = market.claim("carol")
        assert alice.amount == 186
        assert carol.amount == 63
        assert alice.kind == ClaimKind.PAYOUT
        with pytest.raises(NothingToClaimError):
            market.claim("bob")

    def test_single_staker_cancel_refunds_full_stake(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        receipt = market.claim("alice")
        assert receipt.amount == 100
        assert receipt.kind == ClaimKind.REFUND

    def test_cancel_refunds_follow_shares(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        market.cancel(RESOLVER)
        # pool 250 over 234 shares
        assert market.claim("alice").amount == 106
        assert market.claim("bob").amount == 106
        assert market.claim("carol").amount == 36

    def test_claim_twice_rejected(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        market.claim("alice")
        with pytest.raises(AlreadyClaimedError):
            market.claim("alice")
        assert market.preview_claim("alice") == 0

    def test_never_staked_has_nothing(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        with pytest.raises(NothingToClaimError):
            market.claim("stranger")

    def test_stranded_pool_pays_nothing(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.NO)
        with pytest.raises(NothingToClaimError):
            market.claim("alice")

    def test_claim_pays_through_value_transfer(self, clock: FakeClock) -> None:
        transfer = FlakyTransfer()
        market = _market(clock, transfer=transfer)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        market.claim("alice")
        assert transfer.sent == [("alice", 100)]

    def test_failed_transfer_rolls_back_claim(self, clock: FakeClock) -> None:
        transfer = FlakyTransfer()
        market = _market(clock, transfer=transfer)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        events_before = market.events

        transfer.fail = True
        with pytest.raises(RuntimeError):
            market.claim("alice")
        assert market.position("alice").claimed is False
        assert market.events == events_before
        assert market.preview_claim("alice") == 100

        transfer.fail = False
        assert market.claim("alice").amount == 100
        assert transfer.sent == [("alice", 100)]

    def test_reentrant_claim_sees_already_claimed(self, clock: FakeClock) -> None:
        market_ref: list[Market] = []
        reentry_errors: list[Exception] = []

        class ReentrantTransfer:
            def transfer(self, recipient: str, amount: int) -> None:
                try:
                    market_ref[0].claim(recipient)
                except AlreadyClaimedError as e:
                    reentry_errors.append(e)

        market = _market(clock, transfer=ReentrantTransfer())
        market_ref.append(market)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)

        receipt = market.claim("alice")
        assert receipt.amount == 100
        assert len(reentry_errors) == 1
        claimed = [e for e in market.events if e.event_type == MarketEventType.CLAIMED]
        assert len(claimed) == 1

    def test_claim_leaves_pools_untouched(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        market.cancel(RESOLVER)
        market.claim("alice")
        assert (market.yes_pool, market.no_pool) == (150, 100)
        assert market.claim("bob").amount == 106


class TestEvents:
    def test_one_event_per_state_change(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.YES)
        market.claim("alice")
        assert [e.event_type for e in market.events] == [
            MarketEventType.INITIALIZED,
            MarketEventType.STAKE_PLACED,
            MarketEventType.RESOLVED,
            MarketEventType.CLAIMED,
        ]

    def test_stake_event_payload(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.NO, 70)
        event = market.events[-1]
        assert event.market_address == "mkt_test"
        assert event.occurred_at == START
        assert event.payload == {
            "participant": "alice",
            "side": "NO",
            "amount": 70,
            "shares": 70,
            "price_after": 0,
        }

    def test_failed_operations_emit_nothing(self, clock: FakeClock) -> None:
        market = _market(clock)
        with pytest.raises(StakeOutOfRangeError):
            market.stake("alice", Outcome.YES, 0)
        with pytest.raises(TooEarlyError):
            market.resolve(RESOLVER, Outcome.YES)
        assert len(market.events) == 1

    def test_pop_unpublished_hands_over_once(self, clock: FakeClock) -> None:
        market = _market(clock)
        first = market.pop_unpublished_events()
        assert [e.event_type for e in first] == [MarketEventType.INITIALIZED]
        assert market.pop_unpublished_events() == []

        market.stake("alice", Outcome.YES, 10)
        batch = market.pop_unpublished_events()
        assert [e.event_type for e in batch] == [MarketEventType.STAKE_PLACED]
        # history is independent of publication
        assert len(market.events) == 2


class TestConservationProperty:
    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    @pytest.mark.parametrize("terminal", ["resolve_yes", "resolve_no", "cancel"])
    def test_claims_never_exceed_pool(self, clock: FakeClock, seed: int, terminal: str) -> None:
        rng = random.Random(seed)
        treasury = Treasury()
        market = _market(clock, transfer=treasury)
        people = [f"p{i}" for i in range(6)]

        for _ in range(rng.randint(1, 40)):
            who = rng.choice(people)
            amount = rng.randint(1, 2_000)
            market.stake(who, rng.choice([Outcome.YES, Outcome.NO]), amount)
            treasury.receive(who, amount)
        total_pool = market.yes_pool + market.no_pool
        assert treasury.balance == total_pool

        clock.advance(days=1)
        if terminal == "cancel":
            market.cancel(RESOLVER)
        else:
            market.resolve(RESOLVER, Outcome.YES if terminal == "resolve_yes" else Outcome.NO)

        paid = 0
        for who in people:
            expected = market.preview_claim(who)
            try:
                receipt = market.claim(who)
            except NothingToClaimError:
                assert expected == 0
                continue
            assert receipt.amount == expected
            paid += receipt.amount

        assert paid <= total_pool
        assert treasury.balance == total_pool - paid >= 0


class TestPause:
    def test_pause_blocks_stakes_until_reactivated(self, clock: FakeClock) -> None:
        market = _market(clock)
        assert market.set_paused(FACTORY, True) is True
        assert market.status == MarketStatus.PAUSED
        assert market.is_paused
        with pytest.raises(MarketPausedError):
            market.stake("alice", Outcome.YES, 10)
        assert market.yes_pool == 0

        assert market.set_paused(FACTORY, False) is True
        assert market.status == MarketStatus.ACTIVE
        market.stake("alice", Outcome.YES, 10)
        assert market.yes_pool == 10

    def test_status_change_events(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.set_paused(FACTORY, True)
        market.set_paused(FACTORY, False)
        changes = [e for e in market.events if e.event_type == MarketEventType.STATUS_CHANGED]
        assert [e.payload for e in changes] == [{"status": "PAUSED"}, {"status": "ACTIVE"}]

    def test_repeating_current_status_is_a_no_op(self, clock: FakeClock) -> None:
        market = _market(clock)
        assert market.set_paused(FACTORY, False) is False
        assert len(market.events) == 1

    def test_only_factory_may_pause(self, clock: FakeClock) -> None:
        market = _market(clock)
        with pytest.raises(NotFactoryError):
            market.set_paused("alice", True)
        assert market.status == MarketStatus.ACTIVE

    def test_terminal_market_cannot_be_paused(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.cancel(RESOLVER)
        with pytest.raises(MarketNotActiveError):
            market.set_paused(FACTORY, True)

    def test_paused_market_can_still_be_resolved(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 10)
        market.set_paused(FACTORY, True)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.YES)
        assert market.status == MarketStatus.RESOLVED
        assert market.claim("alice").amount == 10


class TestRestore:
    def test_round_trip_keeps_pools_and_settlement(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        clock.advance(days=1)
        market.resolve(RESOLVER, Outcome.YES)

        state = market.export_state()
        assert state.status == MarketStatus.RESOLVED
        assert state.settled_pool == 250
        assert state.settled_yes_shares == 134

        restored = Market.restore(
            state, [market.position("alice")], factory=FACTORY, clock=clock
        )
        assert restored.stats() == market.stats()
        assert restored.outcome == Outcome.YES
        assert restored.preview_claim("alice") == market.preview_claim("alice")
        assert restored.claim("alice").amount == 186
        assert restored.events[-1].event_type == MarketEventType.CLAIMED

    def test_restored_claimed_flag_blocks_second_claim(self, clock: FakeClock) -> None:
        market = _market(clock)
        market.stake("alice", Outcome.YES, 100)
        market.cancel(RESOLVER)
        market.claim("alice")

        restored = Market.restore(
            market.export_state(), [market.position("alice")], factory=FACTORY, clock=clock
        )
        with pytest.raises(AlreadyClaimedError):
            restored.claim("alice")

    def test_restored_active_market_keeps_staking(self, clock: FakeClock) -> None:
        market = _market(clock)
        _seed(market)
        restored = Market.restore(market.export_state(), factory=FACTORY, clock=clock)
        receipt = restored.stake("dave", Outcome.NO, 50)
        assert receipt.shares == market.quote(Outcome.NO, 50).shares
        assert restored.participant_count == 4
        assert restored.stake_count == 4
        assert restored.events[0].event_type == MarketEventType.STAKE_PLACED

    def test_terminal_state_without_snapshot_raises_internal_error(
        self, clock: FakeClock
    ) -> None:
        state = MarketState(
            address="mkt_test",
            config=_config(),
            status=MarketStatus.RESOLVED,
            outcome=Outcome.YES,
            yes_pool=10,
            yes_shares_outstanding=10,
            participant_count=1,
            stake_count=1,
            total_volume=10,
        )
        alice = Position(participant="alice", yes_shares=10, total_staked=10)
        market = Market.restore(state, [alice], factory=FACTORY, clock=clock)
        with pytest.raises(InternalError):
            market.claim("alice")
        assert market.position("alice").claimed is False
        assert market.events == []
