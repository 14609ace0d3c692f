# src/pm_registry/domain/repository.py
"""Repository Protocol — dependency inversion for testability.

Everything the registry and its markets persist goes through this seam:
registry configuration, one row per market, one row per position, the
market event feed and custody movements. Unit tests inject an in-memory
implementation; the infrastructure layer provides the SQL one.

Writes are staged on the caller's session; the application service commits.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.enums import MarketStatus
from src.pm_market.domain.events import MarketEvent
from src.pm_market.domain.models import CustodyMovement, Position
from src.pm_registry.domain.models import (
    CreatorStats,
    PlatformStats,
    RegistryState,
    StoredMarket,
)


class MarketRepositoryProtocol(Protocol):
    # --- registry state ---

    async def get_registry_state(
        self, db: AsyncSession, defaults: RegistryState, *, for_update: bool = False
    ) -> RegistryState:
        """Persisted registry state, or ``defaults`` before the first write.

        ``for_update`` seeds the row if missing and locks it until commit.
        """
        ...

    async def save_registry_state(self, db: AsyncSession, state: RegistryState) -> None: ...

    # --- markets and positions ---

    async def insert_market(self, db: AsyncSession, stored: StoredMarket) -> None: ...

    async def get_market(
        self, db: AsyncSession, market_id: int, *, for_update: bool = False
    ) -> StoredMarket | None:
        """``for_update`` locks the market row, serializing writers per market."""
        ...

    async def save_market(self, db: AsyncSession, stored: StoredMarket) -> None: ...

    async def get_positions(
        self, db: AsyncSession, market_id: int, participants: list[str]
    ) -> list[Position]: ...

    async def save_positions(
        self, db: AsyncSession, market_id: int, positions: list[Position]
    ) -> None: ...

    # --- event feed ---

    async def append_events(
        self, db: AsyncSession, market_id: int, events: list[MarketEvent]
    ) -> None: ...

    async def list_events(self, db: AsyncSession, market_id: int) -> list[MarketEvent]: ...

    # --- custody ---

    async def custody_balance(self, db: AsyncSession, market_id: int | None) -> int: ...

    async def append_custody(self, db: AsyncSession, movements: list[CustodyMovement]) -> None: ...

    # --- listings and aggregates ---

    async def list_markets(
        self,
        db: AsyncSession,
        offset: int,
        limit: int,
        category: str | None = None,
        status: MarketStatus | None = None,
    ) -> tuple[list[StoredMarket], int]:
        """Page of markets in creation order, plus the total matching count."""
        ...

    async def list_categories(self, db: AsyncSession) -> list[str]: ...

    async def creator_stats(self, db: AsyncSession, creator: str) -> CreatorStats: ...

    async def platform_stats(self, db: AsyncSession) -> PlatformStats: ...

    async def top_markets(self, db: AsyncSession, limit: int) -> list[StoredMarket]: ...
