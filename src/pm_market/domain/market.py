"""Market instance — composes ledger, AMM, lifecycle and settlement.

Instances are created uninitialized by the registry and configured exactly
once through ``initialize_once``, or rebuilt from storage with ``restore``.
Every public entry point either fully applies or raises before touching state.

Ordering inside an entry point:
  1. validate preconditions
  2. mutate ledger / lifecycle
  3. record the event
  4. outward call (volume report after a stake, value transfer in a claim)

A re-entrant ``claim`` arriving during step 4 already sees ``claimed=True``.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.errors import (
    AlreadyClaimedError,
    AlreadyInitializedError,
    InternalError,
    InvalidMarketConfigError,
    MarketNotInitializedError,
    MarketPausedError,
    NotFactoryError,
    NothingToClaimError,
    StakeOutOfRangeError,
    ValueMismatchError,
)
from src.pm_market.domain import amm
from src.pm_market.domain.events import (
    MarketEvent,
    claim_paid,
    market_cancelled,
    market_initialized,
    market_resolved,
    market_status_changed,
    stake_placed,
)
from src.pm_market.domain.ledger import MarketLedger
from src.pm_market.domain.lifecycle import MarketLifecycle
from src.pm_market.domain.models import (
    ClaimReceipt,
    MarketConfig,
    MarketState,
    MarketStats,
    Position,
    Quote,
    StakeReceipt,
)
from src.pm_market.domain.ports import ValueTransfer, VolumeReporter
from src.pm_market.domain.settlement import SettlementSnapshot, compute_claim

logger = logging.getLogger(__name__)


def validate_config(config: MarketConfig, now: datetime) -> None:
    if not config.question.strip():
        raise InvalidMarketConfigError("empty question")
    if not config.resolver:
        raise InvalidMarketConfigError("missing resolver")
    if config.min_stake <= 0:
        raise InvalidMarketConfigError(f"min_stake must be positive, got {config.min_stake}")
    if config.min_stake > config.max_stake:
        raise InvalidMarketConfigError(
            f"min_stake {config.min_stake} exceeds max_stake {config.max_stake}"
        )
    if config.end_time <= now:
        raise InvalidMarketConfigError("end time in past")


class Market:
    def __init__(
        self,
        address: str,
        factory: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.address = address
        self.factory = factory
        self._clock = clock
        self._config: MarketConfig | None = None
        self._lifecycle: MarketLifecycle | None = None
        self._ledger = MarketLedger()
        self._snapshot: SettlementSnapshot | None = None
        self._volume_reporter: VolumeReporter | None = None
        self._value_transfer: ValueTransfer | None = None
        self._paused = False
        self._events: list[MarketEvent] = []
        self._unpublished: list[MarketEvent] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def restore(
        cls,
        state: MarketState,
        positions: Iterable[Position] = (),
        *,
        factory: str,
        clock: Callable[[], datetime] = utc_now,
        volume_reporter: VolumeReporter | None = None,
        value_transfer: ValueTransfer | None = None,
    ) -> "Market":
        """Rebuild a persisted market.

        Only ``positions`` are held in memory; operations on other participants
        see empty positions, so callers load every participant they act on.
        The event history is not restored: ``events`` covers this instance only.
        """
        market = cls(state.address, factory, clock)
        config = state.config
        market._config = config
        market._lifecycle = MarketLifecycle.restore(
            state.address,
            config.resolver,
            config.end_time,
            status=state.status,
            outcome=state.outcome,
            resolved_at=state.resolved_at,
            cancelled_at=state.cancelled_at,
            cancel_reason=state.cancel_reason,
        )
        market._ledger = MarketLedger.restore(state, positions)
        market._paused = state.paused
        if state.settled_pool is not None:
            market._snapshot = SettlementSnapshot(
                status=state.status,
                outcome=state.outcome,
                total_pool=state.settled_pool,
                yes_shares=state.settled_yes_shares or 0,
                no_shares=state.settled_no_shares or 0,
            )
        market._volume_reporter = volume_reporter
        market._value_transfer = value_transfer
        return market

    def export_state(self) -> MarketState:
        config, lifecycle = self._require_initialized()
        ledger = self._ledger
        snapshot = self._snapshot
        return MarketState(
            address=self.address,
            config=config,
            status=lifecycle.status,
            paused=self._paused,
            outcome=lifecycle.outcome,
            resolved_at=lifecycle.resolved_at,
            cancelled_at=lifecycle.cancelled_at,
            cancel_reason=lifecycle.cancel_reason,
            yes_pool=ledger.yes_pool,
            no_pool=ledger.no_pool,
            total_volume=ledger.total_volume,
            stake_count=ledger.stake_count,
            participant_count=ledger.participant_count,
            yes_shares_outstanding=ledger.yes_shares_outstanding,
            no_shares_outstanding=ledger.no_shares_outstanding,
            settled_pool=snapshot.total_pool if snapshot else None,
            settled_yes_shares=snapshot.yes_shares if snapshot else None,
            settled_no_shares=snapshot.no_shares if snapshot else None,
        )

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_once(
        self,
        config: MarketConfig,
        *,
        caller: str,
        volume_reporter: VolumeReporter | None = None,
        value_transfer: ValueTransfer | None = None,
    ) -> None:
        if self._config is not None:
            raise AlreadyInitializedError(self.address)
        if caller != self.factory:
            raise NotFactoryError(caller)
        now = self._clock()
        validate_config(config, now)

        self._config = config
        self._lifecycle = MarketLifecycle(self.address, config.resolver, config.end_time)
        self._volume_reporter = volume_reporter
        self._value_transfer = value_transfer
        self._record(market_initialized(self.address, config, now))
        logger.info(
            "Market initialized: market=%s, end_time=%s, resolver=%s",
            self.address,
            config.end_time.isoformat(),
            config.resolver,
        )

    def _require_initialized(self) -> tuple[MarketConfig, MarketLifecycle]:
        if self._config is None or self._lifecycle is None:
            raise MarketNotInitializedError(self.address)
        return self._config, self._lifecycle

    # ------------------------------------------------------------------
    # State-changing entry points
    # ------------------------------------------------------------------

    def stake(
        self,
        participant: str,
        side: Outcome,
        amount: int,
        value_sent: int | None = None,
    ) -> StakeReceipt:
        config, lifecycle = self._require_initialized()
        now = self._clock()
        lifecycle.ensure_active()
        if self._paused:
            raise MarketPausedError(self.address)
        lifecycle.ensure_can_stake(now)
        if not (config.min_stake <= amount <= config.max_stake):
            raise StakeOutOfRangeError(amount, config.min_stake, config.max_stake)
        sent = amount if value_sent is None else value_sent
        if sent != amount:
            raise ValueMismatchError(amount, sent)

        ledger = self._ledger
        shares = amm.compute_shares(ledger.yes_pool, ledger.no_pool, side, amount)

        ledger.apply_stake(participant, side, amount, shares)
        price = amm.current_price(ledger.yes_pool, ledger.no_pool)
        self._record(stake_placed(self.address, participant, side, amount, shares, price, now))
        logger.info(
            "Stake placed: market=%s, participant=%s, side=%s, amount=%d, shares=%d, price=%d",
            self.address,
            participant,
            side.value,
            amount,
            shares,
            price,
        )

        self._report_volume(amount)
        return StakeReceipt(
            participant=participant, side=side, amount=amount, shares=shares, price_after=price
        )

    def set_paused(self, caller: str, paused: bool) -> bool:
        """Suspend or resume staking. Returns False if already in that state.

        Only the deploying factory may call this; it decides who is allowed
        to ask. Resolution and cancellation are unaffected by the flag.
        """
        _, lifecycle = self._require_initialized()
        lifecycle.ensure_active()
        if caller != self.factory:
            raise NotFactoryError(caller)
        if self._paused == paused:
            return False

        self._paused = paused
        self._record(market_status_changed(self.address, self.status, self._clock()))
        logger.info("Market status changed: market=%s, status=%s", self.address, self.status.value)
        return True

    def resolve(self, caller: str, outcome: Outcome) -> None:
        _, lifecycle = self._require_initialized()
        now = self._clock()
        lifecycle.resolve(caller, outcome, now)
        self._snapshot = SettlementSnapshot.capture(self._ledger, lifecycle.status, outcome)
        self._record(market_resolved(self.address, outcome, now))
        logger.info(
            "Market resolved: market=%s, outcome=%s, pool=%d, winning_shares=%d",
            self.address,
            outcome.value,
            self._snapshot.total_pool,
            self._snapshot.winning_shares,
        )

    def cancel(self, caller: str, reason: str = "") -> None:
        _, lifecycle = self._require_initialized()
        now = self._clock()
        lifecycle.cancel(caller, now, reason)
        self._snapshot = SettlementSnapshot.capture(self._ledger, lifecycle.status, None)
        self._record(market_cancelled(self.address, reason, now))
        logger.info("Market cancelled: market=%s, reason=%r", self.address, reason)

    def claim(self, participant: str) -> ClaimReceipt:
        _, lifecycle = self._require_initialized()
        lifecycle.ensure_terminal()
        position = self._ledger.position(participant)
        if position.claimed:
            raise AlreadyClaimedError(participant)
        snapshot = self._snapshot
        if snapshot is None:
            raise InternalError(f"Market {self.address} is terminal without a settlement snapshot")
        quote = compute_claim(snapshot, position)
        if quote.amount == 0:
            raise NothingToClaimError(participant)

        self._ledger.mark_claimed(participant)
        event = claim_paid(self.address, participant, quote.amount, quote.kind, self._clock())
        self._record(event)
        logger.info(
            "Claim paid: market=%s, participant=%s, amount=%d, kind=%s",
            self.address,
            participant,
            quote.amount,
            quote.kind.value,
        )

        if self._value_transfer is not None:
            try:
                self._value_transfer.transfer(participant, quote.amount)
            except Exception:
                # Transfer failed: undo the claim as a whole, then propagate
                self._ledger.unmark_claimed(participant)
                self._retract(event)
                logger.error(
                    "Claim transfer failed, rolled back: market=%s, participant=%s",
                    self.address,
                    participant,
                )
                raise
        return ClaimReceipt(participant=participant, amount=quote.amount, kind=quote.kind)

    # ------------------------------------------------------------------
    # Outward calls / event bookkeeping
    # ------------------------------------------------------------------

    def _report_volume(self, amount: int) -> None:
        if self._volume_reporter is None:
            return
        try:
            self._volume_reporter.report_volume(self.address, amount)
        except Exception:
            logger.warning(
                "Volume report ignored: market=%s, amount=%d", self.address, amount, exc_info=True
            )

    def _record(self, event: MarketEvent) -> None:
        self._events.append(event)
        self._unpublished.append(event)

    def _retract(self, event: MarketEvent) -> None:
        self._events = [e for e in self._events if e is not event]
        self._unpublished = [e for e in self._unpublished if e is not event]

    def pop_unpublished_events(self) -> list[MarketEvent]:
        """Hand over events recorded since the last call (for persistence)."""
        events, self._unpublished = self._unpublished, []
        return events

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> MarketConfig:
        return self._require_initialized()[0]

    @property
    def question(self) -> str:
        return self.config.question

    @property
    def description(self) -> str:
        return self.config.description

    @property
    def end_time(self) -> datetime:
        return self.config.end_time

    @property
    def resolver(self) -> str:
        return self.config.resolver

    @property
    def min_stake(self) -> int:
        return self.config.min_stake

    @property
    def max_stake(self) -> int:
        return self.config.max_stake

    @property
    def status(self) -> MarketStatus:
        status = self._require_initialized()[1].status
        if status == MarketStatus.ACTIVE and self._paused:
            return MarketStatus.PAUSED
        return status

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def outcome(self) -> Outcome | None:
        return self._require_initialized()[1].outcome

    @property
    def resolved_at(self) -> datetime | None:
        return self._require_initialized()[1].resolved_at

    @property
    def cancel_reason(self) -> str | None:
        return self._require_initialized()[1].cancel_reason

    @property
    def is_resolved(self) -> bool:
        return self.status == MarketStatus.RESOLVED

    @property
    def is_cancelled(self) -> bool:
        return self.status == MarketStatus.CANCELLED

    @property
    def yes_pool(self) -> int:
        return self._ledger.yes_pool

    @property
    def no_pool(self) -> int:
        return self._ledger.no_pool

    @property
    def total_volume(self) -> int:
        return self._ledger.total_volume

    @property
    def stake_count(self) -> int:
        return self._ledger.stake_count

    @property
    def participant_count(self) -> int:
        return self._ledger.participant_count

    @property
    def events(self) -> list[MarketEvent]:
        return list(self._events)

    def current_price(self) -> int:
        return amm.current_price(self._ledger.yes_pool, self._ledger.no_pool)

    def position(self, participant: str) -> Position:
        return self._ledger.position(participant)

    def loaded_positions(self) -> list[Position]:
        return self._ledger.loaded_positions()

    def quote(self, side: Outcome, amount: int) -> Quote:
        return amm.quote(self._ledger.yes_pool, self._ledger.no_pool, side, amount)

    def preview_claim(self, participant: str) -> int:
        """Amount ``claim`` would pay right now; 0 when not claimable."""
        if self._snapshot is None:
            return 0
        position = self._ledger.position(participant)
        if position.claimed:
            return 0
        return compute_claim(self._snapshot, position).amount

    def stats(self) -> MarketStats:
        ledger = self._ledger
        return MarketStats(
            status=self.status,
            yes_pool=ledger.yes_pool,
            no_pool=ledger.no_pool,
            total_volume=ledger.total_volume,
            stake_count=ledger.stake_count,
            participant_count=ledger.participant_count,
            yes_shares_outstanding=ledger.yes_shares_outstanding,
            no_shares_outstanding=ledger.no_shares_outstanding,
            price=self.current_price(),
        )
