"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  3xxx: Market engine (stake / resolve / cancel / claim)
  6xxx: Market registry
  9xxx: System

Every error carries a short ``reason`` (e.g. "NotActive") that clients
display verbatim next to the numeric code.
"""


class AppError(Exception):
    """Base application error."""

    reason: str = "Error"

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- Error kinds ---

class AuthorizationError(AppError):
    """Wrong caller for initialize / resolve / cancel / admin operations."""


class MarketStateError(AppError):
    """Operation illegal in the current lifecycle state."""


class TimingError(AppError):
    """Operation attempted on the wrong side of the market end time."""


class InputValidationError(AppError):
    """Stake bounds, malformed configuration, value mismatch."""


class ShareArithmeticError(AppError):
    """AMM produced a non-positive share count."""


# --- 1xxx: Auth ---

class InvalidCredentialsError(AuthorizationError):
    reason = "InvalidCredentials"

    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    reason = "MarketNotFound"

    def __init__(self, market_id: int | str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketNotActiveError(MarketStateError):
    reason = "NotActive"

    def __init__(self, market: str, status: str) -> None:
        super().__init__(3002, f"Market {market} is not active (status={status})", 422)


class MarketEndedError(TimingError):
    reason = "MarketEnded"

    def __init__(self, market: str) -> None:
        super().__init__(3003, f"Market {market} has ended, staking is closed", 422)


class TooEarlyError(TimingError):
    reason = "TooEarly"

    def __init__(self, market: str) -> None:
        super().__init__(3004, f"Market {market} cannot be resolved before its end time", 422)


class UnauthorizedResolverError(AuthorizationError):
    reason = "Unauthorized"

    def __init__(self, caller: str) -> None:
        super().__init__(3005, f"Caller {caller} is not the resolution authority", 403)


class AlreadyInitializedError(MarketStateError):
    reason = "AlreadyInitialized"

    def __init__(self, market: str) -> None:
        super().__init__(3006, f"Market {market} is already initialized", 409)


class InvalidMarketConfigError(InputValidationError):
    reason = "InvalidConfig"

    def __init__(self, detail: str) -> None:
        super().__init__(3007, f"Invalid market configuration: {detail}", 422)


class StakeOutOfRangeError(InputValidationError):
    reason = "StakeOutOfRange"

    def __init__(self, amount: int, min_stake: int, max_stake: int) -> None:
        super().__init__(
            3008,
            f"Stake {amount} outside allowed range [{min_stake}, {max_stake}]",
            422,
        )


class ValueMismatchError(InputValidationError):
    reason = "ValueMismatch"

    def __init__(self, declared: int, sent: int) -> None:
        super().__init__(3009, f"Value sent {sent} does not match declared amount {declared}", 422)


class ZeroSharesError(ShareArithmeticError):
    reason = "ZeroShares"

    def __init__(self, amount: int) -> None:
        super().__init__(3010, f"Stake of {amount} would issue no shares", 422)


class MarketNotSettleableError(MarketStateError):
    reason = "NotSettleable"

    def __init__(self, market: str) -> None:
        super().__init__(3011, f"Market {market} is neither resolved nor cancelled", 422)


class AlreadyClaimedError(AppError):
    reason = "AlreadyClaimed"

    def __init__(self, participant: str) -> None:
        super().__init__(3012, f"Participant {participant} has already claimed", 409)


class NothingToClaimError(AppError):
    reason = "NothingToClaim"

    def __init__(self, participant: str) -> None:
        super().__init__(3013, f"Nothing to claim for participant {participant}", 422)


class MarketNotInitializedError(MarketStateError):
    reason = "NotInitialized"

    def __init__(self, market: str) -> None:
        super().__init__(3014, f"Market {market} is not initialized", 422)


class NotFactoryError(AuthorizationError):
    reason = "NotFactory"

    def __init__(self, caller: str) -> None:
        super().__init__(3015, f"Caller {caller} is not the deploying factory", 403)


class MarketPausedError(MarketStateError):
    reason = "MarketPaused"

    def __init__(self, market: str) -> None:
        super().__init__(3016, f"Market {market} is paused, staking is suspended", 422)


# --- 6xxx: Registry ---

class NotRegistryOwnerError(AuthorizationError):
    reason = "NotOwner"

    def __init__(self, caller: str) -> None:
        super().__init__(6001, f"Caller {caller} is not the registry owner", 403)


class CreatorNotAuthorizedError(AuthorizationError):
    reason = "NotAuthorizedCreator"

    def __init__(self, creator: str) -> None:
        super().__init__(6002, f"Not authorized creator: {creator}", 403)


class RegistryPausedError(MarketStateError):
    reason = "Paused"

    def __init__(self) -> None:
        super().__init__(6003, "Registry is paused", 422)


class InsufficientCreationFeeError(InputValidationError):
    reason = "InsufficientFee"

    def __init__(self, required: int, paid: int) -> None:
        super().__init__(6004, f"Insufficient creation fee: required {required}, paid {paid}", 422)


class InvalidDurationLimitsError(InputValidationError):
    reason = "InvalidDurationLimits"

    def __init__(self, min_seconds: int, max_seconds: int) -> None:
        super().__init__(
            6005, f"Invalid duration limits: min {min_seconds}s, max {max_seconds}s", 422
        )


class NoFeesToWithdrawError(InputValidationError):
    reason = "NoFees"

    def __init__(self) -> None:
        super().__init__(6006, "No fees to withdraw", 422)


class MarketNotRegisteredError(AuthorizationError):
    reason = "MarketNotRegistered"

    def __init__(self, address: str) -> None:
        super().__init__(6007, f"Market not registered: {address}", 403)


class MarketStatusNotAuthorizedError(AuthorizationError):
    reason = "NotAuthorized"

    def __init__(self, caller: str, market_id: int) -> None:
        super().__init__(
            6008, f"Caller {caller} may not change the status of market {market_id}", 403
        )


class InvalidStatusChangeError(InputValidationError):
    reason = "InvalidStatus"

    def __init__(self, status: str) -> None:
        super().__init__(6009, f"Market status cannot be set to {status}", 422)


# --- 9xxx: System ---

class InternalError(AppError):
    reason = "Internal"

    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
