"""
Bulletin API schemas (request models).
"""

from __future__ import annotations

from datetime import date
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

EditableStatus = Literal["draft", "approved", "built"]
ListFilter = Literal["active", "drafts", "deleted", "all"]


class CreateBulletinRequest(BaseModel):
    service_date: date


class CreateFromPreviousRequest(BaseModel):
    previous_bulletin_id: UUID
    new_service_date: date
    template_key: str | None = Field(default=None, min_length=1, max_length=100)


class UpdateBulletinRequest(BaseModel):
    # Locking and deleting have their own endpoints; status here stays editable.
    status: EditableStatus | None = None
    service_date: date | None = None
    template_key: str | None = Field(default=None, min_length=1, max_length=100)
    design_options: dict[str, Any] | None = None
    canvas_layout_json: dict[str, Any] | None = None
    use_canvas_layout: bool | None = None


class CanvasLayoutRequest(BaseModel):
    canvas_layout_json: dict[str, Any]
    use_canvas_layout: bool = True


class TemplateKeyRequest(BaseModel):
    template_key: str = Field(..., min_length=1, max_length=100)


class DesignOptionsRequest(BaseModel):
    design_options: dict[str, Any]


class CopyFromBulletinRequest(BaseModel):
    source_bulletin_id: UUID
    copy_service_items: bool = False
