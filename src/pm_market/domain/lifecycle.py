"""Market lifecycle: ACTIVE -> RESOLVED | CANCELLED.

Both terminal states are final; nothing ever returns to ACTIVE. Checks run
state first, then authority, then timing, and raise before mutating.
"""

from datetime import datetime

from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.errors import (
    MarketEndedError,
    MarketNotActiveError,
    MarketNotSettleableError,
    TooEarlyError,
    UnauthorizedResolverError,
)


class MarketLifecycle:
    def __init__(self, market: str, resolver: str, end_time: datetime) -> None:
        self._market = market
        self.resolver = resolver
        self.end_time = end_time
        self.status = MarketStatus.ACTIVE
        self.outcome: Outcome | None = None
        self.resolved_at: datetime | None = None
        self.cancelled_at: datetime | None = None
        self.cancel_reason: str | None = None

    @classmethod
    def restore(
        cls,
        market: str,
        resolver: str,
        end_time: datetime,
        *,
        status: MarketStatus,
        outcome: Outcome | None = None,
        resolved_at: datetime | None = None,
        cancelled_at: datetime | None = None,
        cancel_reason: str | None = None,
    ) -> "MarketLifecycle":
        lifecycle = cls(market, resolver, end_time)
        lifecycle.status = status
        lifecycle.outcome = outcome
        lifecycle.resolved_at = resolved_at
        lifecycle.cancelled_at = cancelled_at
        lifecycle.cancel_reason = cancel_reason
        return lifecycle

    @property
    def is_terminal(self) -> bool:
        return self.status != MarketStatus.ACTIVE

    def ensure_active(self) -> None:
        if self.status != MarketStatus.ACTIVE:
            raise MarketNotActiveError(self._market, self.status.value)

    def ensure_can_stake(self, now: datetime) -> None:
        self.ensure_active()
        if now >= self.end_time:
            raise MarketEndedError(self._market)

    def ensure_terminal(self) -> None:
        if not self.is_terminal:
            raise MarketNotSettleableError(self._market)

    def _ensure_resolver(self, caller: str) -> None:
        if caller != self.resolver:
            raise UnauthorizedResolverError(caller)

    def resolve(self, caller: str, outcome: Outcome, now: datetime) -> None:
        self.ensure_active()
        self._ensure_resolver(caller)
        if now < self.end_time:
            raise TooEarlyError(self._market)
        self.status = MarketStatus.RESOLVED
        self.outcome = outcome
        self.resolved_at = now

    def cancel(self, caller: str, now: datetime, reason: str = "") -> None:
        # No end-time gate: erroneous markets may be cancelled at any point
        self.ensure_active()
        self._ensure_resolver(caller)
        self.status = MarketStatus.CANCELLED
        self.cancelled_at = now
        self.cancel_reason = reason
