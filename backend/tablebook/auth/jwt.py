"""JWT verification for identity-provider access tokens.

The identity provider signs tokens with the shared secret. ``sub`` is the
caller's opaque owner id, ``role`` is ``customer`` or ``operator`` and
operators may carry ``restaurant_ids``, the restaurants they manage
(absent means all). ``create_access_token`` exists for local development
and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from tablebook.config import settings

CUSTOMER = "customer"
OPERATOR = "operator"


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    Args:
        data: Payload data. Must include ``sub`` (owner id). ``role``
            defaults to ``customer``.
        expires_delta: Custom expiration duration. Defaults to
            ``settings.jwt_access_token_expire_minutes`` minutes.

    Returns:
        Encoded JWT string.
    """
    to_encode = {"role": CUSTOMER, **data}
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    to_encode.update({"exp": expire, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_operator_token(operator_id: str, restaurant_ids: list[str] | None = None) -> str:
    """Access token for restaurant staff, optionally scoped to some restaurants."""
    data: dict = {"sub": operator_id, "role": OPERATOR}
    if restaurant_ids is not None:
        data["restaurant_ids"] = restaurant_ids
    return create_access_token(data)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
