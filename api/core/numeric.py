"""
Conversions for aggregate values coming back from PostgreSQL.

asyncpg returns COUNT/SUM over integers as `int` and AVG as `Decimal`;
NULL comes back as `None` when a group has no rows.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

SECONDS_PER_MINUTE = Decimal(60)


def to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, Decimal, float)):
        return int(value)
    raw = str(value).strip()
    if not raw:
        return 0
    try:
        return int(Decimal(raw))
    except InvalidOperation:
        return 0


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr keeps 0.1 as 0.1 instead of its binary expansion.
        return Decimal(repr(value))
    raw = str(value).strip()
    if not raw:
        return Decimal(0)
    try:
        return Decimal(raw)
    except InvalidOperation:
        return Decimal(0)


def round_half_away_from_zero(value: Any) -> int:
    """
    Round to the nearest integer; ties go away from zero (67.5 -> 68, -2.5 -> -3).

    `ROUND_HALF_UP` in `decimal` rounds ties away from zero for both signs,
    unlike the builtin `round`, which rounds ties to even.
    """
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def seconds_to_minutes(seconds: Any) -> int:
    return round_half_away_from_zero(to_decimal(seconds) / SECONDS_PER_MINUTE)
