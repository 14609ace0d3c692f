"""Global enums — values must match the DB CHECK constraints."""

from enum import Enum


class MarketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"          # staking suspended by creator / owner; lifecycle still ACTIVE
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class Outcome(str, Enum):
    """Binary outcome side, used both for stakes and for resolution."""
    YES = "YES"
    NO = "NO"


class ClaimKind(str, Enum):
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"


class MarketEventType(str, Enum):
    INITIALIZED = "INITIALIZED"
    STAKE_PLACED = "STAKE_PLACED"
    STATUS_CHANGED = "STATUS_CHANGED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"
    CLAIMED = "CLAIMED"


class CustodyDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"
