"""Constant-product share pricing for binary pools.

All arithmetic is integer floor division. The only quantity protected is the
pool product k = yes_pool * no_pool: pools only ever grow, so k never
decreases. Share issue is not protected against rounding. Flooring the
opposite pool makes the issued shares round UP relative to the exact
rational result, by less than one share, and never past the opposite pool
as it stood before the stake.

Price convention: YES price in whole percent, 50 on an empty market.
"""

from src.pm_common.enums import Outcome
from src.pm_common.errors import ZeroSharesError
from src.pm_market.domain.models import Quote


def compute_shares(yes_pool: int, no_pool: int, side: Outcome, amount: int) -> int:
    """Shares issued on ``side`` for a stake of ``amount``.

    k = yes_pool * no_pool before the stake. For a YES stake:
      new_yes = yes_pool + amount
      new_no  = k // new_yes
      shares  = no_pool - new_no
    NO stakes swap the roles of the two pools.

    While k == 0 (empty market, or only one side funded so far) shares are
    minted 1:1 with the stake.

    Raises:
        ValueError: amount is not positive (caller must validate bounds first).
        ZeroSharesError: floor rounding left nothing to issue.
    """
    if amount <= 0:
        raise ValueError(f"Stake amount must be positive, got {amount}")

    k = yes_pool * no_pool
    if k == 0:
        return amount

    if side == Outcome.YES:
        new_chosen = yes_pool + amount
        opposite = no_pool
    else:
        new_chosen = no_pool + amount
        opposite = yes_pool

    new_opposite = k // new_chosen
    shares = opposite - new_opposite
    if shares <= 0:
        raise ZeroSharesError(amount)
    return shares


def current_price(yes_pool: int, no_pool: int) -> int:
    """YES price in percent: yes_pool * 100 // (yes_pool + no_pool)."""
    total = yes_pool + no_pool
    if total == 0:
        return 50
    return yes_pool * 100 // total


def pools_after(yes_pool: int, no_pool: int, side: Outcome, amount: int) -> tuple[int, int]:
    """Pool sizes after a stake; only the chosen pool grows."""
    if side == Outcome.YES:
        return yes_pool + amount, no_pool
    return yes_pool, no_pool + amount


def quote(yes_pool: int, no_pool: int, side: Outcome, amount: int) -> Quote:
    """Read-only preview of a stake: shares issued and the resulting price."""
    shares = compute_shares(yes_pool, no_pool, side, amount)
    new_yes, new_no = pools_after(yes_pool, no_pool, side, amount)
    return Quote(shares=shares, price_after=current_price(new_yes, new_no))
