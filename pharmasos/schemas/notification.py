"""Notification schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    target_role: str | None
    priority: str
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="meta")
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    limit: int
    skip: int
    count: int


class UnreadCountResponse(BaseModel):
    unread_count: int
    has_high_priority: bool


class MarkedCountResponse(BaseModel):
    marked_count: int


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    target_role: str | None = Field(default=None, pattern="^(PHARMACY|PATIENT|ADMIN)$")
    priority: str = Field(default="normal", pattern="^(normal|high)$")
