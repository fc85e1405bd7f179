"""
Service item API schemas (request models).
"""

from __future__ import annotations

from datetime import date
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

ItemType = Literal[
    "Welcome",
    "CallToWorship",
    "Song",
    "Prayer",
    "Scripture",
    "Sermon",
    "Offering",
    "Communion",
    "Benediction",
    "Announcement",
    "Other",
]


class CreateServiceItemRequest(BaseModel):
    service_date: date
    type: ItemType
    title: str = Field(..., min_length=1, max_length=500)
    # Appended after the date's last item when omitted.
    sequence: int | None = Field(default=None, ge=0)
    content: str | None = None
    ccli_number: str | None = Field(default=None, max_length=50)
    artist: str | None = Field(default=None, max_length=300)
    scripture_ref: str | None = Field(default=None, max_length=200)
    speaker: str | None = Field(default=None, max_length=200)
    duration_minutes: int | None = Field(default=None, ge=0, le=600)
    section: str | None = Field(default=None, max_length=100)
    sermon_id: UUID | None = None


class UpdateServiceItemRequest(BaseModel):
    # Fields left out are untouched; an explicit null clears the column.
    type: ItemType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=500)
    sequence: int | None = Field(default=None, ge=0)
    content: str | None = None
    ccli_number: str | None = Field(default=None, max_length=50)
    artist: str | None = Field(default=None, max_length=300)
    scripture_ref: str | None = Field(default=None, max_length=200)
    speaker: str | None = Field(default=None, max_length=200)
    duration_minutes: int | None = Field(default=None, ge=0, le=600)
    section: str | None = Field(default=None, max_length=100)
    sermon_id: UUID | None = None


class ReorderServiceItemsRequest(BaseModel):
    service_date: date
    # Every non-deleted item of the date, in the new order.
    item_ids: list[UUID] = Field(..., min_length=1)
