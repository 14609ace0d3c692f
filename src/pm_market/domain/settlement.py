"""Settlement — payout / refund amounts from the terminal snapshot.

RESOLVED:  total_pool * winning_shares // winning_outstanding   (PAYOUT)
CANCELLED: total_pool * (yes + no)     // (yes + no outstanding) (REFUND)

Refunds follow share weight, not original stake. If nobody holds a winning
share the pool is stranded and every payout is zero.
"""

from dataclasses import dataclass

from src.pm_common.enums import ClaimKind, MarketStatus, Outcome
from src.pm_market.domain.ledger import MarketLedger
from src.pm_market.domain.models import Position


@dataclass(frozen=True)
class SettlementSnapshot:
    status: MarketStatus
    outcome: Outcome | None
    total_pool: int
    yes_shares: int
    no_shares: int

    @classmethod
    def capture(
        cls, ledger: MarketLedger, status: MarketStatus, outcome: Outcome | None
    ) -> "SettlementSnapshot":
        return cls(
            status=status,
            outcome=outcome,
            total_pool=ledger.total_pool,
            yes_shares=ledger.yes_shares_outstanding,
            no_shares=ledger.no_shares_outstanding,
        )

    @property
    def winning_shares(self) -> int:
        if self.outcome == Outcome.YES:
            return self.yes_shares
        if self.outcome == Outcome.NO:
            return self.no_shares
        return 0


@dataclass(frozen=True)
class ClaimQuote:
    amount: int
    kind: ClaimKind


def _pro_rata(total_pool: int, weight: int, denominator: int) -> int:
    if denominator == 0 or weight == 0:
        return 0
    return total_pool * weight // denominator


def compute_claim(snapshot: SettlementSnapshot, position: Position) -> ClaimQuote:
    """Claimable amount for one position. Does not look at ``claimed``."""
    if snapshot.status == MarketStatus.CANCELLED:
        amount = _pro_rata(
            snapshot.total_pool,
            position.total_shares,
            snapshot.yes_shares + snapshot.no_shares,
        )
        return ClaimQuote(amount=amount, kind=ClaimKind.REFUND)

    if snapshot.status == MarketStatus.RESOLVED and snapshot.outcome is not None:
        amount = _pro_rata(
            snapshot.total_pool,
            position.shares_for(snapshot.outcome),
            snapshot.winning_shares,
        )
        return ClaimQuote(amount=amount, kind=ClaimKind.PAYOUT)

    raise ValueError(f"Cannot settle a market in status {snapshot.status.value}")
