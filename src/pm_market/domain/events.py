"""Market events — the feed indexers use to rebuild market history.

One event per successful state change, including pause and reactivation.
Payload values are JSON-safe (str / int / None).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.pm_common.enums import ClaimKind, MarketEventType, MarketStatus, Outcome
from src.pm_market.domain.models import MarketConfig


@dataclass(frozen=True)
class MarketEvent:
    market_address: str
    event_type: MarketEventType
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


def market_initialized(address: str, config: MarketConfig, at: datetime) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.INITIALIZED,
        occurred_at=at,
        payload={
            "question": config.question,
            "end_time": config.end_time.isoformat(),
            "resolver": config.resolver,
            "min_stake": config.min_stake,
            "max_stake": config.max_stake,
        },
    )


def stake_placed(
    address: str,
    participant: str,
    side: Outcome,
    amount: int,
    shares: int,
    price_after: int,
    at: datetime,
) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.STAKE_PLACED,
        occurred_at=at,
        payload={
            "participant": participant,
            "side": side.value,
            "amount": amount,
            "shares": shares,
            "price_after": price_after,
        },
    )


def market_status_changed(address: str, status: MarketStatus, at: datetime) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.STATUS_CHANGED,
        occurred_at=at,
        payload={"status": status.value},
    )


def market_resolved(address: str, outcome: Outcome, at: datetime) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.RESOLVED,
        occurred_at=at,
        payload={"outcome": outcome.value, "resolved_at": at.isoformat()},
    )


def market_cancelled(address: str, reason: str, at: datetime) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.CANCELLED,
        occurred_at=at,
        payload={"reason": reason},
    )


def claim_paid(
    address: str, participant: str, amount: int, kind: ClaimKind, at: datetime
) -> MarketEvent:
    return MarketEvent(
        market_address=address,
        event_type=MarketEventType.CLAIMED,
        occurred_at=at,
        payload={"participant": participant, "amount": amount, "kind": kind.value},
    )
