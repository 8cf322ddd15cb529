"""Display unit conversion for time ranges.

Durations are stored as whole days. The builder shows them in days, weeks or
months; converting is lossy (a month is 30 days) and only ever used for
display. Deadline arithmetic never goes through these helpers.
"""

import math

from .schemas import TimeUnit

DAYS_PER_UNIT = {
    TimeUnit.DAYS: 1,
    TimeUnit.WEEKS: 7,
    TimeUnit.MONTHS: 30,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_to_unit(days: int, unit: TimeUnit) -> int:
    """Express a day count in ``unit``, rounded to the nearest whole unit."""
    return _round_half_up(days / DAYS_PER_UNIT[unit])


def unit_to_days(value: float, unit: TimeUnit) -> int:
    """Convert a value entered in ``unit`` to whole days."""
    return _round_half_up(value * DAYS_PER_UNIT[unit])


def describe_days(days: int, unit: TimeUnit = TimeUnit.DAYS) -> str:
    """Human-friendly label such as ``"2 weeks"`` or ``"1 day"``."""
    amount = days_to_unit(days, unit)
    noun = unit.value.lower().rstrip("s")
    return f"{amount} {noun}" if amount == 1 else f"{amount} {noun}s"
