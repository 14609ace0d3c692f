"""Domain models for pm_market — pure dataclasses, no business logic."""

from dataclasses import dataclass
from datetime import datetime

from src.pm_common.enums import ClaimKind, CustodyDirection, MarketStatus, Outcome


@dataclass(frozen=True)
class MarketConfig:
    """Immutable after initialization."""

    question: str
    description: str
    end_time: datetime
    resolver: str
    min_stake: int
    max_stake: int


@dataclass
class Position:
    participant: str
    yes_shares: int = 0
    no_shares: int = 0
    total_staked: int = 0     # value units contributed across all stakes
    claimed: bool = False

    @property
    def total_shares(self) -> int:
        return self.yes_shares + self.no_shares

    def shares_for(self, side: Outcome) -> int:
        return self.yes_shares if side == Outcome.YES else self.no_shares


@dataclass(frozen=True)
class Quote:
    """AMM preview for a prospective stake."""

    shares: int
    price_after: int          # YES price in percent after the stake


@dataclass(frozen=True)
class StakeReceipt:
    participant: str
    side: Outcome
    amount: int
    shares: int
    price_after: int


@dataclass(frozen=True)
class ClaimReceipt:
    participant: str
    amount: int
    kind: ClaimKind


@dataclass(frozen=True)
class MarketStats:
    status: MarketStatus
    yes_pool: int
    no_pool: int
    total_volume: int
    stake_count: int
    participant_count: int
    yes_shares_outstanding: int
    no_shares_outstanding: int
    price: int


@dataclass(frozen=True)
class MarketState:
    """Persisted form of a Market: configuration, lifecycle and ledger aggregates.

    Positions are stored separately, one row per participant. ``status`` is the
    lifecycle status (never PAUSED); the pause flag lives in ``paused``. The
    ``settled_*`` totals are frozen when the market leaves ACTIVE and stay None
    until then.
    """

    address: str
    config: MarketConfig
    status: MarketStatus = MarketStatus.ACTIVE
    paused: bool = False
    outcome: Outcome | None = None
    resolved_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    yes_pool: int = 0
    no_pool: int = 0
    total_volume: int = 0
    stake_count: int = 0
    participant_count: int = 0
    yes_shares_outstanding: int = 0
    no_shares_outstanding: int = 0
    settled_pool: int | None = None
    settled_yes_shares: int | None = None
    settled_no_shares: int | None = None


@dataclass(frozen=True)
class CustodyMovement:
    """Value entering or leaving custody. ``market_id`` None is the registry fee pool."""

    market_id: int | None
    account: str
    direction: CustodyDirection
    amount: int
