"""FastAPI authentication dependencies for route protection.

Identity is owned by an external provider; these dependencies only verify
its bearer token and expose the caller's owner id and role.
"""

import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from tablebook.auth.jwt import CUSTOMER, OPERATOR, decode_token
from tablebook.services.lifecycle import OperatorContext

# Strict bearer: rejects requests without a token
_bearer_scheme = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    owner_id: str
    role: str
    restaurant_ids: frozenset[uuid.UUID] | None = None

    @property
    def is_operator(self) -> bool:
        return self.role == OPERATOR


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> Principal:
    """Validate the Bearer token and return the caller.

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong type or malformed.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception from None

    # Only accept access tokens, not refresh tokens
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub: str | None = payload.get("sub")
    if not sub:
        raise credentials_exception

    role = payload.get("role", CUSTOMER)
    if role not in (CUSTOMER, OPERATOR):
        raise credentials_exception

    restaurant_ids = None
    if payload.get("restaurant_ids") is not None:
        try:
            restaurant_ids = frozenset(uuid.UUID(r) for r in payload["restaurant_ids"])
        except (TypeError, ValueError):
            raise credentials_exception from None

    return Principal(owner_id=sub, role=role, restaurant_ids=restaurant_ids)


async def get_operator(principal: Principal = Depends(get_current_principal)) -> OperatorContext:
    """Return the operator context, or 403 for non-staff callers."""
    if not principal.is_operator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Restaurant operator role required",
        )
    return OperatorContext(operator_id=principal.owner_id, restaurant_ids=principal.restaurant_ids)
