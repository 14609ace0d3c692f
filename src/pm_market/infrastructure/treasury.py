"""Custody of staked value and creation fees for one unit of work.

A Treasury covers one custody scope: a single market's stakes, or the
registry fee pool (``market_id=None``). It opens with the persisted balance
of that scope, receives the value sent with stakes and fees, and performs
the outward transfer at the end of a claim or fee withdrawal. Each movement
is kept until the caller writes it out alongside the rest of the transaction.
"""

import logging

from src.pm_common.enums import CustodyDirection
from src.pm_common.errors import InternalError
from src.pm_market.domain.models import CustodyMovement

logger = logging.getLogger(__name__)


class Treasury:
    def __init__(self, market_id: int | None = None, balance: int = 0) -> None:
        self.market_id = market_id
        self.balance = balance
        self._history: list[CustodyMovement] = []
        self._pending: list[CustodyMovement] = []

    def _move(self, account: str, direction: CustodyDirection, amount: int) -> None:
        movement = CustodyMovement(self.market_id, account, direction, amount)
        self._history.append(movement)
        self._pending.append(movement)

    def receive(self, sender: str, amount: int) -> None:
        self.balance += amount
        self._move(sender, CustodyDirection.IN, amount)

    def transfer(self, recipient: str, amount: int) -> None:
        if amount > self.balance:
            raise InternalError(
                f"Treasury balance {self.balance} cannot cover transfer of {amount}"
            )
        self.balance -= amount
        self._move(recipient, CustodyDirection.OUT, amount)
        logger.debug("Transfer out: recipient=%s, amount=%d", recipient, amount)

    def pop_movements(self) -> list[CustodyMovement]:
        """Hand over movements recorded since the last call (for persistence)."""
        movements, self._pending = self._pending, []
        return movements

    def received_from(self, sender: str) -> int:
        return sum(
            m.amount for m in self._history
            if m.account == sender and m.direction == CustodyDirection.IN
        )

    def paid_out_to(self, recipient: str) -> int:
        return sum(
            m.amount for m in self._history
            if m.account == recipient and m.direction == CustodyDirection.OUT
        )
