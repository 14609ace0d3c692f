"""JWT access tokens carrying the participant identity.

The ``sub`` claim is the participant / resolver / creator id used by every
market operation. Tokens are issued by an upstream identity service sharing
JWT_SECRET; ``create_access_token`` exists for that service and for tests.

NOTE: HS256 (symmetric HMAC), no revocation. Tokens stay valid until expiry.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.pm_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)


def create_access_token(participant_id: str, expires_in: timedelta | None = None) -> str:
    """Issue an access token (default lifetime: JWT_EXPIRE_MINUTES)."""
    now = datetime.now(UTC)
    payload = {
        "sub": participant_id,
        "type": "access",
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else _ACCESS_EXPIRE),
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature invalid, token expired, wrong type,
            or no subject.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidCredentialsError()
    return payload
