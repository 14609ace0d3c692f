"""Pydantic schemas for pm_market API requests and responses.

Datetimes are returned as ISO-8601 strings. Prices are YES price in percent.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.pm_common.enums import MarketStatus, Outcome
from src.pm_market.domain.events import MarketEvent
from src.pm_market.domain.models import ClaimReceipt, Position, Quote, StakeReceipt
from src.pm_registry.domain.models import (
    CreatorStats,
    MarketRecord,
    PlatformStats,
    RegistryState,
)


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateMarketRequest(BaseModel):
    question: str = Field(max_length=500)
    description: str = Field("", max_length=5000)
    end_time: datetime
    category: str = Field(min_length=1, max_length=64)
    min_stake: int = Field(gt=0)
    max_stake: int = Field(gt=0)
    resolver: str = Field(max_length=128)
    creation_fee: int = Field(0, ge=0, description="Value sent to cover the registry creation fee")


class StakeRequest(BaseModel):
    side: Outcome
    amount: int = Field(gt=0)
    value: int | None = Field(
        None, ge=0, description="Value actually sent; defaults to amount, must match it"
    )


class ResolveRequest(BaseModel):
    outcome: Outcome


class CancelRequest(BaseModel):
    reason: str = Field("", max_length=500)


class UpdateStatusRequest(BaseModel):
    status: MarketStatus = Field(description="ACTIVE to reactivate, PAUSED to suspend staking")


# ---------------------------------------------------------------------------
# Market views
# ---------------------------------------------------------------------------


class MarketListItem(BaseModel):
    market_id: int
    address: str
    question: str
    category: str
    creator: str
    status: str
    end_time: str
    total_volume: int
    price: int

    @classmethod
    def from_record(cls, r: MarketRecord) -> "MarketListItem":
        return cls(
            market_id=r.market_id,
            address=r.address,
            question=r.question,
            category=r.category,
            creator=r.creator,
            status=r.status.value,
            end_time=r.end_time.isoformat(),
            total_volume=r.market.total_volume,
            price=r.market.current_price(),
        )


class MarketListResponse(BaseModel):
    items: list[MarketListItem]
    total: int
    offset: int
    limit: int


class MarketDetail(BaseModel):
    market_id: int
    address: str
    question: str
    description: str
    category: str
    creator: str
    resolver: str
    status: str
    outcome: str | None
    min_stake: int
    max_stake: int
    end_time: str
    created_at: str
    resolved_at: str | None
    cancel_reason: str | None
    yes_pool: int
    no_pool: int
    price: int
    total_volume: int
    stake_count: int
    participant_count: int
    yes_shares_outstanding: int
    no_shares_outstanding: int

    @classmethod
    def from_record(cls, r: MarketRecord) -> "MarketDetail":
        m = r.market
        stats = m.stats()
        return cls(
            market_id=r.market_id,
            address=r.address,
            question=m.question,
            description=m.description,
            category=r.category,
            creator=r.creator,
            resolver=m.resolver,
            status=stats.status.value,
            outcome=m.outcome.value if m.outcome else None,
            min_stake=m.min_stake,
            max_stake=m.max_stake,
            end_time=m.end_time.isoformat(),
            created_at=r.created_at.isoformat(),
            resolved_at=_iso(m.resolved_at),
            cancel_reason=m.cancel_reason,
            yes_pool=stats.yes_pool,
            no_pool=stats.no_pool,
            price=stats.price,
            total_volume=stats.total_volume,
            stake_count=stats.stake_count,
            participant_count=stats.participant_count,
            yes_shares_outstanding=stats.yes_shares_outstanding,
            no_shares_outstanding=stats.no_shares_outstanding,
        )


class MarketEventOut(BaseModel):
    event_type: str
    occurred_at: str
    payload: dict[str, Any]

    @classmethod
    def from_domain(cls, e: MarketEvent) -> "MarketEventOut":
        return cls(
            event_type=e.event_type.value,
            occurred_at=e.occurred_at.isoformat(),
            payload=e.payload,
        )


# ---------------------------------------------------------------------------
# Positions, quotes, stakes, claims
# ---------------------------------------------------------------------------


class PositionOut(BaseModel):
    market_id: int
    participant: str
    yes_shares: int
    no_shares: int
    total_staked: int
    claimed: bool
    claimable: int

    @classmethod
    def from_domain(cls, market_id: int, p: Position, claimable: int) -> "PositionOut":
        return cls(
            market_id=market_id,
            participant=p.participant,
            yes_shares=p.yes_shares,
            no_shares=p.no_shares,
            total_staked=p.total_staked,
            claimed=p.claimed,
            claimable=claimable,
        )


class QuoteOut(BaseModel):
    market_id: int
    side: Outcome
    amount: int
    shares: int
    price_after: int

    @classmethod
    def from_domain(cls, market_id: int, side: Outcome, amount: int, q: Quote) -> "QuoteOut":
        return cls(
            market_id=market_id,
            side=side,
            amount=amount,
            shares=q.shares,
            price_after=q.price_after,
        )


class StakeResponse(BaseModel):
    market_id: int
    participant: str
    side: Outcome
    amount: int
    shares: int
    price_after: int
    yes_pool: int
    no_pool: int

    @classmethod
    def from_receipt(cls, r: MarketRecord, receipt: StakeReceipt) -> "StakeResponse":
        return cls(
            market_id=r.market_id,
            participant=receipt.participant,
            side=receipt.side,
            amount=receipt.amount,
            shares=receipt.shares,
            price_after=receipt.price_after,
            yes_pool=r.market.yes_pool,
            no_pool=r.market.no_pool,
        )


class ClaimResponse(BaseModel):
    market_id: int
    participant: str
    amount: int
    kind: str

    @classmethod
    def from_receipt(cls, market_id: int, receipt: ClaimReceipt) -> "ClaimResponse":
        return cls(
            market_id=market_id,
            participant=receipt.participant,
            amount=receipt.amount,
            kind=receipt.kind.value,
        )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class PlatformStatsOut(BaseModel):
    total_markets: int
    active_markets: int
    total_volume: int
    unique_creators: int

    @classmethod
    def from_domain(cls, s: PlatformStats) -> "PlatformStatsOut":
        return cls(
            total_markets=s.total_markets,
            active_markets=s.active_markets,
            total_volume=s.total_volume,
            unique_creators=s.unique_creators,
        )


class CreatorStatsOut(BaseModel):
    creator: str
    markets_created: int
    active_markets: int
    total_volume: int
    market_ids: list[int]

    @classmethod
    def from_domain(cls, s: CreatorStats) -> "CreatorStatsOut":
        return cls(
            creator=s.creator,
            markets_created=s.markets_created,
            active_markets=s.active_markets,
            total_volume=s.total_volume,
            market_ids=s.market_ids,
        )


class RegistryConfigOut(BaseModel):
    paused: bool
    require_authorization: bool
    creation_fee: int
    min_duration_seconds: int
    max_duration_seconds: int
    collected_fees: int
    market_count: int
    authorized_creators: list[str]

    @classmethod
    def from_state(cls, s: RegistryState) -> "RegistryConfigOut":
        return cls(
            paused=s.paused,
            require_authorization=s.require_authorization,
            creation_fee=s.creation_fee,
            min_duration_seconds=int(s.min_duration.total_seconds()),
            max_duration_seconds=int(s.max_duration.total_seconds()),
            collected_fees=s.collected_fees,
            market_count=s.market_count,
            authorized_creators=sorted(s.authorized_creators),
        )
