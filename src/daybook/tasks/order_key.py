# src/daybook/tasks/order_key.py

"""
Dense order keys.

A key is a non-empty string of base-62 digits read as the fraction 0.d1d2d3...
The digit alphabet is in ASCII order, so plain string comparison is the numeric
comparison. Keys never end in the zero digit: without that rule "V" and "V0"
would be different strings for the same fraction and nothing could be placed
between them.

Between any two keys there is always room for another one; a key can always be
made before the smallest or after the largest. Repeated insertion at the same
spot grows the key by roughly one character every few insertions.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..core.errors import InvalidOrderKeyError

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)
ZERO = DIGITS[0]

_DIGIT_INDEX = {ch: i for i, ch in enumerate(DIGITS)}


def is_valid(key: str | None) -> bool:
    if not key or key.endswith(ZERO):
        return False
    return all(ch in _DIGIT_INDEX for ch in key)


def validate(key: str) -> str:
    if not is_valid(key):
        raise InvalidOrderKeyError(f"invalid order key: {key!r}")
    return key


def _midpoint(lower: str, upper: str | None) -> str:
    """
    Digits strictly between the fractions 0.lower and 0.upper.

    lower may be "" (zero); upper None stands for 1.
    """
    if upper is not None:
        # Shared prefix (lower padded with zeros) is copied verbatim.
        n = 0
        while n < len(upper) and (lower[n] if n < len(lower) else ZERO) == upper[n]:
            n += 1
        if n > 0:
            return upper[:n] + _midpoint(lower[n:], upper[n:])

    lo = _DIGIT_INDEX[lower[0]] if lower else 0
    hi = _DIGIT_INDEX[upper[0]] if upper is not None else BASE

    if hi - lo > 1:
        return DIGITS[(lo + hi + 1) // 2]

    # Adjacent first digits.
    if upper is not None and len(upper) > 1:
        return upper[0]
    return DIGITS[lo] + _midpoint(lower[1:], None)


def between(lower: str | None, upper: str | None) -> str:
    """Return a key strictly greater than lower and strictly less than upper (None = open)."""
    if lower is not None:
        validate(lower)
    if upper is not None:
        validate(upper)
    if lower is not None and upper is not None and lower >= upper:
        raise InvalidOrderKeyError(f"lower bound {lower!r} is not below upper bound {upper!r}")
    return _midpoint(lower or "", upper)


def before(key: str | None) -> str:
    return between(None, key)


def after(key: str | None) -> str:
    return between(key, None)


def for_index(sorted_keys: Sequence[str], index: int) -> str:
    """
    Key that lands at position `index` of an ascending key list.

    The index is clamped to [0, len(sorted_keys)], so any index past the end appends.
    """
    index = max(0, min(int(index), len(sorted_keys)))
    lower = sorted_keys[index - 1] if index > 0 else None
    upper = sorted_keys[index] if index < len(sorted_keys) else None
    return between(lower, upper)


def spread(lower: str | None, upper: str | None, count: int) -> list[str]:
    """`count` ascending keys, all strictly between lower and upper."""
    keys: list[str] = []
    prev = lower
    for _ in range(max(0, count)):
        prev = between(prev, upper)
        keys.append(prev)
    return keys


def compare(a: str | None, b: str | None) -> int:
    """
    Three-way comparison; a missing key sorts after every present key.

    Equal keys compare as 0; callers break the tie by task id.
    """
    if a == b:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return -1 if a < b else 1


def sort_key(order: str | None, tie_breaker: str) -> tuple[bool, str, str]:
    """Sort tuple: present keys first, ascending, then by tie_breaker (task id)."""
    return (order is None, order or "", tie_breaker)
