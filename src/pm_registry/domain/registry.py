"""MarketRegistry — creates, restores and administers market instances.

Markets are cloned uninitialized and immediately configured through
``Market.initialize_once`` with the registry as deploying factory. Markets
loaded from storage are rebuilt through ``load`` with the same factory
identity. The registry is also the markets' volume reporter: each successful
stake calls back into ``report_volume``.

A registry instance works on the ``RegistryState`` it was built with and on
the records created or loaded through it; listings and aggregates over every
market are answered by the repository.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.errors import (
    CreatorNotAuthorizedError,
    InsufficientCreationFeeError,
    InvalidDurationLimitsError,
    InvalidMarketConfigError,
    InvalidStatusChangeError,
    MarketNotFoundError,
    MarketNotRegisteredError,
    MarketStatusNotAuthorizedError,
    NoFeesToWithdrawError,
    NotRegistryOwnerError,
    RegistryPausedError,
)
from src.pm_market.domain.market import Market
from src.pm_market.domain.models import MarketConfig, Position
from src.pm_market.domain.ports import ValueTransfer, VolumeReporter
from src.pm_registry.domain.models import (
    MarketParams,
    MarketRecord,
    RegistryState,
    StoredMarket,
)

logger = logging.getLogger(__name__)

REGISTRY_IDENTITY = "market-registry"

_SETTABLE_STATUSES = (MarketStatus.ACTIVE, MarketStatus.PAUSED)


def _new_address() -> str:
    return f"mkt_{uuid.uuid4().hex[:16]}"


def restore_record(
    stored: StoredMarket,
    positions: Iterable[Position] = (),
    *,
    clock: Callable[[], datetime] = utc_now,
    volume_reporter: VolumeReporter | None = None,
    value_transfer: ValueTransfer | None = None,
) -> MarketRecord:
    """Rebuild a registry record and its market from storage."""
    market = Market.restore(
        stored.state,
        positions,
        factory=REGISTRY_IDENTITY,
        clock=clock,
        volume_reporter=volume_reporter,
        value_transfer=value_transfer,
    )
    return MarketRecord(
        market_id=stored.market_id,
        address=market.address,
        creator=stored.creator,
        category=stored.category,
        created_at=stored.created_at,
        market=market,
        total_volume=stored.total_volume,
    )


class MarketRegistry:
    def __init__(
        self,
        state: RegistryState,
        clock: Callable[[], datetime] = utc_now,
        value_transfer: ValueTransfer | None = None,
    ) -> None:
        if state.min_duration >= state.max_duration:
            raise InvalidDurationLimitsError(
                int(state.min_duration.total_seconds()), int(state.max_duration.total_seconds())
            )
        self.state = state
        self.identity = REGISTRY_IDENTITY
        self._clock = clock
        self._value_transfer = value_transfer
        self._records: dict[int, MarketRecord] = {}
        self._by_address: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Market creation and loading
    # ------------------------------------------------------------------

    def create_market(self, creator: str, params: MarketParams, fee_paid: int = 0) -> MarketRecord:
        state = self.state
        if state.paused:
            raise RegistryPausedError()
        if state.require_authorization and not self.is_authorized_creator(creator):
            raise CreatorNotAuthorizedError(creator)
        if fee_paid < state.creation_fee:
            raise InsufficientCreationFeeError(state.creation_fee, fee_paid)

        now = self._clock()
        self._validate_params(params, now)

        market = Market(address=_new_address(), factory=self.identity, clock=self._clock)
        market.initialize_once(
            MarketConfig(
                question=params.question,
                description=params.description,
                end_time=params.end_time,
                resolver=params.resolver,
                min_stake=params.min_stake,
                max_stake=params.max_stake,
            ),
            caller=self.identity,
            volume_reporter=self,
            value_transfer=self._value_transfer,
        )

        record = MarketRecord(
            market_id=state.market_count,
            address=market.address,
            creator=creator,
            category=params.category,
            created_at=now,
            market=market,
        )
        self._attach(record)
        state.market_count += 1
        state.collected_fees += fee_paid

        logger.info(
            "Market created: id=%d, address=%s, creator=%s, category=%s",
            record.market_id,
            market.address,
            creator,
            params.category,
        )
        return record

    def _validate_params(self, params: MarketParams, now: datetime) -> None:
        if not params.question.strip():
            raise InvalidMarketConfigError("empty question")
        if params.end_time <= now:
            raise InvalidMarketConfigError("end time in past")
        duration = params.end_time - now
        if duration < self.state.min_duration:
            raise InvalidMarketConfigError("duration too short")
        if duration > self.state.max_duration:
            raise InvalidMarketConfigError("duration too long")
        if not params.resolver:
            raise InvalidMarketConfigError("invalid resolver")
        if params.min_stake > params.max_stake:
            raise InvalidMarketConfigError("invalid stake limits")

    def load(self, stored: StoredMarket, positions: Iterable[Position] = ()) -> MarketRecord:
        """Rebuild a stored market wired to this registry and its value transfer."""
        record = restore_record(
            stored,
            positions,
            clock=self._clock,
            volume_reporter=self,
            value_transfer=self._value_transfer,
        )
        self._attach(record)
        return record

    def _attach(self, record: MarketRecord) -> None:
        self._records[record.market_id] = record
        self._by_address[record.address] = record.market_id

    def get_market(self, market_id: int) -> MarketRecord:
        record = self._records.get(market_id)
        if record is None:
            raise MarketNotFoundError(market_id)
        return record

    # ------------------------------------------------------------------
    # Volume reporting (called by markets)
    # ------------------------------------------------------------------

    def report_volume(self, market_address: str, amount: int) -> None:
        market_id = self._by_address.get(market_address)
        if market_id is None:
            raise MarketNotRegisteredError(market_address)
        self._records[market_id].total_volume += amount

    # ------------------------------------------------------------------
    # Lifecycle forwarding and status management
    # ------------------------------------------------------------------

    def resolve_market(self, caller: str, market_id: int, outcome: Outcome) -> MarketRecord:
        record = self.get_market(market_id)
        record.market.resolve(caller, outcome)
        return record

    def cancel_market(self, caller: str, market_id: int, reason: str = "") -> MarketRecord:
        record = self.get_market(market_id)
        record.market.cancel(caller, reason)
        return record

    def update_market_status(
        self, caller: str, market_id: int, status: MarketStatus
    ) -> MarketRecord:
        """Pause or reactivate staking on a market. Creator or owner only.

        RESOLVED and CANCELLED are reached through the resolution authority,
        never set here.
        """
        record = self.get_market(market_id)
        if caller not in (record.creator, self.state.owner):
            raise MarketStatusNotAuthorizedError(caller, market_id)
        if status not in _SETTABLE_STATUSES:
            raise InvalidStatusChangeError(status.value)
        record.market.set_paused(self.identity, status == MarketStatus.PAUSED)
        logger.info(
            "Market status updated: id=%d, status=%s, caller=%s",
            market_id,
            record.status.value,
            caller,
        )
        return record

    # ------------------------------------------------------------------
    # Admin (owner only)
    # ------------------------------------------------------------------

    def ensure_owner(self, caller: str) -> None:
        if caller != self.state.owner:
            raise NotRegistryOwnerError(caller)

    def is_authorized_creator(self, creator: str) -> bool:
        return creator == self.state.owner or creator in self.state.authorized_creators

    def toggle_pause(self, caller: str) -> bool:
        self.ensure_owner(caller)
        self.state.paused = not self.state.paused
        logger.info("Registry pause toggled: paused=%s", self.state.paused)
        return self.state.paused

    def toggle_require_authorization(self, caller: str) -> bool:
        self.ensure_owner(caller)
        self.state.require_authorization = not self.state.require_authorization
        logger.info(
            "Creator authorization toggled: required=%s", self.state.require_authorization
        )
        return self.state.require_authorization

    def set_authorized_creator(self, caller: str, creator: str, authorized: bool) -> None:
        self.ensure_owner(caller)
        if authorized:
            self.state.authorized_creators.add(creator)
        else:
            self.state.authorized_creators.discard(creator)
        logger.info("Creator authorization set: creator=%s, authorized=%s", creator, authorized)

    def set_duration_limits(
        self, caller: str, min_duration: timedelta, max_duration: timedelta
    ) -> None:
        self.ensure_owner(caller)
        if min_duration >= max_duration:
            raise InvalidDurationLimitsError(
                int(min_duration.total_seconds()), int(max_duration.total_seconds())
            )
        self.state.min_duration = min_duration
        self.state.max_duration = max_duration

    def set_creation_fee(self, caller: str, fee: int) -> None:
        self.ensure_owner(caller)
        if fee < 0:
            raise InvalidMarketConfigError(f"creation fee must not be negative, got {fee}")
        self.state.creation_fee = fee

    def withdraw_fees(self, caller: str, recipient: str) -> int:
        self.ensure_owner(caller)
        if not recipient:
            raise InvalidMarketConfigError("invalid recipient")
        if self.state.collected_fees == 0:
            raise NoFeesToWithdrawError()
        amount, self.state.collected_fees = self.state.collected_fees, 0
        if self._value_transfer is not None:
            try:
                self._value_transfer.transfer(recipient, amount)
            except Exception:
                self.state.collected_fees = amount
                raise
        logger.info("Fees withdrawn: recipient=%s, amount=%d", recipient, amount)
        return amount
