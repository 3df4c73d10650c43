"""Shared API dependencies — single import point for all routers.

Re-exports the reservation engine and authentication dependencies so that
router modules can import everything they need from one place::

    from tablebook.api.deps import get_engine, get_current_principal
"""

from fastapi import Request

from tablebook.auth.dependencies import Principal, get_current_principal, get_operator
from tablebook.services.engine import ReservationEngine


def get_engine(request: Request) -> ReservationEngine:
    """Return the application-wide reservation engine created at startup."""
    return request.app.state.engine


__all__ = [
    "Principal",
    "get_current_principal",
    "get_engine",
    "get_operator",
]
