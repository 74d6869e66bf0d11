"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the inclusive date window used by every effective-dated record
    (rates, overrides, charges, master-data history) and the fixed-point
    helpers used for amounts and per-unit rates.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts carry 2 fractional digits, per-unit rates 4, both rounded
      half-up.  Floats are rejected at the boundary.
    - A window's end is never before its start; ``end=None`` is open-ended.
    - ``contains`` is inclusive at both ends, so two windows that share a
      boundary day overlap, and ``[a, b]`` followed by ``[b + 1, ...]`` does not.

Failure modes:
    - ValueError on reversed windows or non-decimal numeric input.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_TWO_PLACES = Decimal("0.01")
_FOUR_PLACES = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert ``value`` to Decimal, refusing floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Refusing non-decimal numeric value: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


def quantize_amount(value: Decimal | int | str) -> Decimal:
    """Round a monetary amount to 2 places, half-up."""
    return to_decimal(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal | int | str) -> Decimal:
    """Round a per-unit rate to 4 places, half-up."""
    return to_decimal(value).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class DateWindow:
    """
    Inclusive calendar window.

    Contract:
        ``start`` is required; ``end`` may be None, meaning the window never
        closes.  Both bounds are inclusive.

    Guarantees:
        - Immutable and hashable.
        - ``end is None or end >= start``.

    Non-goals:
        - No time-of-day or timezone handling.  Billing works in whole days.
    """

    start: date
    end: date | None = None

    def __post_init__(self) -> None:
        if self.end is not None and self.end < self.start:
            raise ValueError(
                f"Window end {self.end} is before start {self.start}"
            )

    @property
    def is_open_ended(self) -> bool:
        return self.end is None

    def contains(self, day: date) -> bool:
        if day < self.start:
            return False
        return self.end is None or day <= self.end

    def overlaps(self, other: DateWindow) -> bool:
        """start1 <= end2 AND start2 <= end1, with None as +infinity."""
        if other.end is not None and self.start > other.end:
            return False
        if self.end is not None and other.start > self.end:
            return False
        return True

    def intersection(self, other: DateWindow) -> DateWindow | None:
        if not self.overlaps(other):
            return None
        start = max(self.start, other.start)
        if self.end is None:
            end = other.end
        elif other.end is None:
            end = self.end
        else:
            end = min(self.end, other.end)
        return DateWindow(start, end)

    def days(self) -> Iterator[date]:
        """Iterate every calendar day in the window.  Requires a closed window."""
        if self.end is None:
            raise ValueError("Cannot enumerate days of an open-ended window")
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)

    def day_count(self) -> int:
        if self.end is None:
            raise ValueError("Open-ended window has no day count")
        return (self.end - self.start).days + 1

    def __str__(self) -> str:
        end = self.end.isoformat() if self.end is not None else "open"
        return f"[{self.start.isoformat()}, {end}]"
