"""MarketApplicationService — composition layer over repository, registry and treasury.

Every write runs as one transaction on the caller's session:
  1. load (and lock) the rows it touches: registry state and/or the market row
     with the positions of the participants involved
  2. run the synchronous domain operation on the rebuilt objects
  3. stage the new market and position state, the events the market
     recorded, and any custody movements
  4. commit

Any exception rolls the whole transaction back and propagates, so stored
state, the event feed and custody never diverge. The market row lock
serializes writers per market, so event ids follow emission order.
Reads rebuild records from storage and never write.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_common.datetime_utils import ensure_utc, utc_now
from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.errors import MarketNotFoundError
from src.pm_market.application.schemas import (
    CancelRequest,
    ClaimResponse,
    CreateMarketRequest,
    CreatorStatsOut,
    MarketDetail,
    MarketEventOut,
    MarketListItem,
    MarketListResponse,
    PlatformStatsOut,
    PositionOut,
    QuoteOut,
    RegistryConfigOut,
    StakeRequest,
    StakeResponse,
)
from src.pm_market.infrastructure.treasury import Treasury
from src.pm_registry.domain.models import MarketParams, MarketRecord, RegistryState
from src.pm_registry.domain.registry import MarketRegistry, restore_record
from src.pm_registry.domain.repository import MarketRepositoryProtocol
from src.pm_registry.infrastructure.persistence import MarketRepository

T = TypeVar("T")


def default_registry_state() -> RegistryState:
    """Registry state before the first registry write, from settings."""
    return RegistryState(
        owner=settings.REGISTRY_OWNER_ID,
        require_authorization=settings.REQUIRE_CREATOR_AUTHORIZATION,
        creation_fee=settings.CREATION_FEE,
        min_duration=timedelta(seconds=settings.MIN_MARKET_DURATION_SECONDS),
        max_duration=timedelta(seconds=settings.MAX_MARKET_DURATION_SECONDS),
    )


class MarketApplicationService:
    def __init__(
        self,
        repo: MarketRepositoryProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
        defaults: Callable[[], RegistryState] = default_registry_state,
    ) -> None:
        self._repo: MarketRepositoryProtocol = repo or MarketRepository()
        self._clock = clock
        self._defaults = defaults

    # ------------------------------------------------------------------
    # Unit-of-work helpers
    # ------------------------------------------------------------------

    async def _registry(
        self,
        db: AsyncSession,
        treasury: Treasury | None = None,
        *,
        for_update: bool = False,
    ) -> MarketRegistry:
        state = await self._repo.get_registry_state(db, self._defaults(), for_update=for_update)
        return MarketRegistry(state, clock=self._clock, value_transfer=treasury)

    async def _load(
        self,
        db: AsyncSession,
        registry: MarketRegistry,
        market_id: int,
        participants: Iterable[str] = (),
    ) -> MarketRecord:
        stored = await self._repo.get_market(db, market_id, for_update=True)
        if stored is None:
            raise MarketNotFoundError(market_id)
        positions = await self._repo.get_positions(db, market_id, list(participants))
        return registry.load(stored, positions)

    async def _stage(
        self,
        db: AsyncSession,
        record: MarketRecord,
        treasury: Treasury | None = None,
        *,
        created: bool = False,
    ) -> None:
        stored = record.to_stored()
        if created:
            await self._repo.insert_market(db, stored)
        else:
            await self._repo.save_market(db, stored)
        await self._repo.save_positions(db, record.market_id, record.market.loaded_positions())
        await self._repo.append_events(
            db, record.market_id, record.market.pop_unpublished_events()
        )
        if treasury is not None:
            await self._repo.append_custody(db, treasury.pop_movements())

    async def _read_record(
        self, db: AsyncSession, market_id: int, participants: Iterable[str] = ()
    ) -> MarketRecord:
        stored = await self._repo.get_market(db, market_id)
        if stored is None:
            raise MarketNotFoundError(market_id)
        positions = await self._repo.get_positions(db, market_id, list(participants))
        return restore_record(stored, positions, clock=self._clock)

    # ------------------------------------------------------------------
    # Market writes
    # ------------------------------------------------------------------

    async def create_market(
        self, db: AsyncSession, creator: str, req: CreateMarketRequest
    ) -> MarketDetail:
        params = MarketParams(
            question=req.question,
            description=req.description,
            end_time=ensure_utc(req.end_time),
            category=req.category,
            min_stake=req.min_stake,
            max_stake=req.max_stake,
            resolver=req.resolver,
        )
        try:
            registry = await self._registry(db, for_update=True)
            record = registry.create_market(creator, params, fee_paid=req.creation_fee)
            await self._repo.save_registry_state(db, registry.state)
            fees = Treasury(market_id=None)
            if req.creation_fee:
                fees.receive(creator, req.creation_fee)
            await self._stage(db, record, fees, created=True)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return MarketDetail.from_record(record)

    async def stake(
        self, db: AsyncSession, market_id: int, participant: str, req: StakeRequest
    ) -> StakeResponse:
        try:
            registry = await self._registry(db)
            record = await self._load(db, registry, market_id, [participant])
            receipt = record.market.stake(participant, req.side, req.amount, value_sent=req.value)
            treasury = Treasury(market_id)
            treasury.receive(participant, receipt.amount)
            await self._stage(db, record, treasury)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return StakeResponse.from_receipt(record, receipt)

    async def resolve(
        self, db: AsyncSession, market_id: int, caller: str, outcome: Outcome
    ) -> MarketDetail:
        try:
            registry = await self._registry(db)
            record = await self._load(db, registry, market_id)
            registry.resolve_market(caller, market_id, outcome)
            await self._stage(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return MarketDetail.from_record(record)

    async def cancel(
        self, db: AsyncSession, market_id: int, caller: str, req: CancelRequest
    ) -> MarketDetail:
        try:
            registry = await self._registry(db)
            record = await self._load(db, registry, market_id)
            registry.cancel_market(caller, market_id, req.reason)
            await self._stage(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return MarketDetail.from_record(record)

    async def update_market_status(
        self, db: AsyncSession, market_id: int, caller: str, status: MarketStatus
    ) -> MarketDetail:
        try:
            registry = await self._registry(db)
            record = await self._load(db, registry, market_id)
            registry.update_market_status(caller, market_id, status)
            await self._stage(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return MarketDetail.from_record(record)

    async def claim(self, db: AsyncSession, market_id: int, participant: str) -> ClaimResponse:
        try:
            treasury = Treasury(market_id)
            registry = await self._registry(db, treasury)
            record = await self._load(db, registry, market_id, [participant])
            # balance read under the market row lock
            treasury.balance = await self._repo.custody_balance(db, market_id)
            receipt = record.market.claim(participant)
            await self._stage(db, record, treasury)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return ClaimResponse.from_receipt(market_id, receipt)

    # ------------------------------------------------------------------
    # Registry administration (owner only)
    # ------------------------------------------------------------------

    async def _administer(self, db: AsyncSession, action: Callable[[MarketRegistry], T]) -> T:
        try:
            registry = await self._registry(db, for_update=True)
            result = action(registry)
            await self._repo.save_registry_state(db, registry.state)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return result

    async def registry_config(self, db: AsyncSession, caller: str) -> RegistryConfigOut:
        registry = await self._registry(db)
        registry.ensure_owner(caller)
        return RegistryConfigOut.from_state(registry.state)

    async def toggle_pause(self, db: AsyncSession, caller: str) -> bool:
        return await self._administer(db, lambda r: r.toggle_pause(caller))

    async def toggle_require_authorization(self, db: AsyncSession, caller: str) -> bool:
        return await self._administer(db, lambda r: r.toggle_require_authorization(caller))

    async def set_authorized_creator(
        self, db: AsyncSession, caller: str, creator: str, authorized: bool
    ) -> None:
        await self._administer(db, lambda r: r.set_authorized_creator(caller, creator, authorized))

    async def set_duration_limits(
        self, db: AsyncSession, caller: str, min_duration: timedelta, max_duration: timedelta
    ) -> None:
        await self._administer(
            db, lambda r: r.set_duration_limits(caller, min_duration, max_duration)
        )

    async def set_creation_fee(self, db: AsyncSession, caller: str, fee: int) -> None:
        await self._administer(db, lambda r: r.set_creation_fee(caller, fee))

    async def withdraw_fees(self, db: AsyncSession, caller: str, recipient: str) -> int:
        try:
            fees = Treasury(market_id=None)
            registry = await self._registry(db, fees, for_update=True)
            # balance read under the registry row lock
            fees.balance = await self._repo.custody_balance(db, None)
            amount = registry.withdraw_fees(caller, recipient)
            await self._repo.save_registry_state(db, registry.state)
            await self._repo.append_custody(db, fees.pop_movements())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return amount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_markets(
        self,
        db: AsyncSession,
        offset: int,
        limit: int,
        category: str | None = None,
        status: MarketStatus | None = None,
    ) -> MarketListResponse:
        stored, total = await self._repo.list_markets(db, offset, limit, category, status)
        records = [restore_record(s, clock=self._clock) for s in stored]
        return MarketListResponse(
            items=[MarketListItem.from_record(r) for r in records],
            total=total,
            offset=offset,
            limit=limit,
        )

    async def get_market(self, db: AsyncSession, market_id: int) -> MarketDetail:
        return MarketDetail.from_record(await self._read_record(db, market_id))

    async def get_events(self, db: AsyncSession, market_id: int) -> list[MarketEventOut]:
        await self._read_record(db, market_id)
        events = await self._repo.list_events(db, market_id)
        return [MarketEventOut.from_domain(e) for e in events]

    async def get_position(
        self, db: AsyncSession, market_id: int, participant: str
    ) -> PositionOut:
        market = (await self._read_record(db, market_id, [participant])).market
        return PositionOut.from_domain(
            market_id, market.position(participant), market.preview_claim(participant)
        )

    async def quote(
        self, db: AsyncSession, market_id: int, side: Outcome, amount: int
    ) -> QuoteOut:
        market = (await self._read_record(db, market_id)).market
        return QuoteOut.from_domain(market_id, side, amount, market.quote(side, amount))

    async def categories(self, db: AsyncSession) -> list[str]:
        return await self._repo.list_categories(db)

    async def platform_stats(self, db: AsyncSession) -> PlatformStatsOut:
        return PlatformStatsOut.from_domain(await self._repo.platform_stats(db))

    async def creator_stats(self, db: AsyncSession, creator: str) -> CreatorStatsOut:
        return CreatorStatsOut.from_domain(await self._repo.creator_stats(db, creator))

    async def top_markets(self, db: AsyncSession, limit: int) -> list[MarketListItem]:
        stored = await self._repo.top_markets(db, limit)
        return [MarketListItem.from_record(restore_record(s, clock=self._clock)) for s in stored]


_default_service: MarketApplicationService | None = None


def get_market_service() -> MarketApplicationService:
    """FastAPI dependency: process-wide service (tests override it)."""
    global _default_service  # noqa: PLW0603
    if _default_service is None:
        _default_service = MarketApplicationService()
    return _default_service
