"""Domain models for pm_registry — pure dataclasses, no business logic."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.pm_common.enums import MarketStatus
from src.pm_market.domain.market import Market
from src.pm_market.domain.models import MarketState


@dataclass(frozen=True)
class MarketParams:
    question: str
    description: str
    end_time: datetime
    category: str
    min_stake: int
    max_stake: int
    resolver: str


@dataclass
class RegistryState:
    """Registry configuration and counters; one persisted row plus the creator allow-list."""

    owner: str
    paused: bool = False
    require_authorization: bool = False
    creation_fee: int = 0
    min_duration: timedelta = timedelta(hours=1)
    max_duration: timedelta = timedelta(days=365)
    collected_fees: int = 0
    market_count: int = 0
    authorized_creators: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class StoredMarket:
    """One row of the markets table: listing fields plus the market's own state."""

    market_id: int
    creator: str
    category: str
    created_at: datetime
    total_volume: int         # accumulated from the market's volume reports
    state: MarketState


@dataclass
class MarketRecord:
    market_id: int
    address: str
    creator: str
    category: str
    created_at: datetime
    market: Market
    total_volume: int = 0     # accumulated from the market's volume reports

    @property
    def question(self) -> str:
        return self.market.question

    @property
    def end_time(self) -> datetime:
        return self.market.end_time

    @property
    def status(self) -> MarketStatus:
        return self.market.status

    def to_stored(self) -> StoredMarket:
        return StoredMarket(
            market_id=self.market_id,
            creator=self.creator,
            category=self.category,
            created_at=self.created_at,
            total_volume=self.total_volume,
            state=self.market.export_state(),
        )


@dataclass
class CreatorStats:
    creator: str
    markets_created: int = 0
    active_markets: int = 0
    total_volume: int = 0
    market_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class PlatformStats:
    total_markets: int
    active_markets: int
    total_volume: int
    unique_creators: int
