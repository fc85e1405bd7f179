"""
Preach mode API schemas (request models).
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel

TimingEvent = Literal["start", "end"]


class StartSessionRequest(BaseModel):
    bulletin_issue_id: UUID


class RecordTimingRequest(BaseModel):
    service_item_id: UUID
    event: TimingEvent
