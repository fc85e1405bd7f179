"""
Analytics query models.
"""

from __future__ import annotations

from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

GroupBy = Literal["presenter", "series", "timeSlot"]


class AnalyticsFilters(BaseModel):
    """
    Date range and entity filters shared by every analytics query.

    `from_date`/`to_date` bound the bulletin issue date (inclusive); missing
    bounds default to a trailing window ending today.
    """

    from_date: date | None = None
    to_date: date | None = None
    series_id: UUID | None = None
    presenter: str | None = Field(default=None, min_length=1, max_length=200)
    time_slot: str | None = Field(default=None, pattern=r"^\d{2}:00$")
