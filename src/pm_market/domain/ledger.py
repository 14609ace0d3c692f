"""Per-market accounting: outcome pools, positions and aggregate counters.

Pools and share balances only ever grow. Claims never debit a pool; they are
paid from the settlement snapshot taken when the market leaves ACTIVE, so the
only settlement mutation here is the per-position ``claimed`` flag.

A ledger rebuilt from storage holds only the positions that were loaded for
the operation at hand; every aggregate is a persisted counter, so none of them
depends on which positions are present.
"""

from collections.abc import Iterable
from dataclasses import replace

from src.pm_common.enums import Outcome
from src.pm_market.domain.models import MarketState, Position


class MarketLedger:
    def __init__(self) -> None:
        self.yes_pool = 0
        self.no_pool = 0
        self.total_volume = 0
        self.stake_count = 0
        # Running totals, so settlement never re-scans every position
        self.yes_shares_outstanding = 0
        self.no_shares_outstanding = 0
        self._participant_count = 0
        self._positions: dict[str, Position] = {}

    @classmethod
    def restore(cls, state: MarketState, positions: Iterable[Position] = ()) -> "MarketLedger":
        ledger = cls()
        ledger.yes_pool = state.yes_pool
        ledger.no_pool = state.no_pool
        ledger.total_volume = state.total_volume
        ledger.stake_count = state.stake_count
        ledger.yes_shares_outstanding = state.yes_shares_outstanding
        ledger.no_shares_outstanding = state.no_shares_outstanding
        ledger._participant_count = state.participant_count
        for pos in positions:
            ledger._positions[pos.participant] = replace(pos)
        return ledger

    @property
    def total_pool(self) -> int:
        return self.yes_pool + self.no_pool

    @property
    def participant_count(self) -> int:
        return self._participant_count

    def position(self, participant: str) -> Position:
        """Return a copy of the participant's position (empty if never staked)."""
        pos = self._positions.get(participant)
        if pos is None:
            return Position(participant=participant)
        return replace(pos)

    def loaded_positions(self) -> list[Position]:
        """Copies of the positions held in memory, in first-touch order."""
        return [replace(p) for p in self._positions.values()]

    def has_position(self, participant: str) -> bool:
        return participant in self._positions

    def apply_stake(self, participant: str, side: Outcome, amount: int, shares: int) -> Position:
        pos = self._positions.get(participant)
        if pos is None:
            pos = Position(participant=participant)
            self._positions[participant] = pos
        if pos.total_staked == 0:
            self._participant_count += 1

        if side == Outcome.YES:
            self.yes_pool += amount
            self.yes_shares_outstanding += shares
            pos.yes_shares += shares
        else:
            self.no_pool += amount
            self.no_shares_outstanding += shares
            pos.no_shares += shares

        pos.total_staked += amount
        self.total_volume += amount
        self.stake_count += 1
        return self.position(participant)

    def outstanding(self, side: Outcome) -> int:
        if side == Outcome.YES:
            return self.yes_shares_outstanding
        return self.no_shares_outstanding

    def sum_shares(self, side: Outcome) -> int:
        """Scan of the loaded positions; equals ``outstanding(side)`` when all are loaded."""
        return sum(p.shares_for(side) for p in self._positions.values())

    def mark_claimed(self, participant: str) -> None:
        self._positions[participant].claimed = True

    def unmark_claimed(self, participant: str) -> None:
        """Undo ``mark_claimed`` when the outward transfer of a claim fails."""
        self._positions[participant].claimed = False
