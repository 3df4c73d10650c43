"""Confirmation code generator — short, display-safe booking references.

Codes look like ``TB-LX2K9QZC-7F3A``: a prefix, the creation time in
milliseconds encoded in base 36, and four random base-36 characters.
Uniqueness across every booking ever created is verified by the store
before a code is accepted.
"""

import secrets
import time
from collections.abc import Callable

from tablebook.config import settings

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_SEGMENT_LENGTH = 4


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base 36."""
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


class ConfirmationCodeGenerator:
    """Produces ``PREFIX-<base36 time>-<random>`` codes."""

    def __init__(
        self,
        prefix: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = (prefix or settings.confirmation_code_prefix).upper()
        self._clock = clock

    def generate(self) -> str:
        millis = int(self._clock() * 1000)
        random_part = "".join(secrets.choice(_ALPHABET) for _ in range(RANDOM_SEGMENT_LENGTH))
        return f"{self.prefix}-{to_base36(millis)}-{random_part}"
