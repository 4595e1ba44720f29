# src/assessment_engine/schemas/progress.py
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.assessment_engine.db.models import MaterialKind


class HeartbeatPayload(BaseModel):
    kind: MaterialKind
    delta_sec: int = Field(default=0, ge=0)
    position_sec: Optional[int] = Field(default=None, ge=0)
    duration_sec: Optional[int] = Field(default=None, gt=0)
    scroll_depth: Optional[float] = Field(default=None, ge=0, le=1)
    percent: Optional[float] = Field(default=None, ge=0, le=100)
    meta: Optional[Any] = None


class MaterialCreate(BaseModel):
    kind: MaterialKind
    title: str = Field(min_length=1)
    url: Optional[str] = None
    content_html: Optional[str] = None
    duration_sec: Optional[int] = Field(default=None, gt=0)
    estimated_seconds: Optional[int] = Field(default=None, gt=0)
    estimated_minutes: Optional[int] = Field(default=None, gt=0)
    order: int = 1


class MaterialUpdate(BaseModel):
    kind: Optional[MaterialKind] = None
    title: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = None
    content_html: Optional[str] = None
    duration_sec: Optional[int] = Field(default=None, gt=0)
    estimated_seconds: Optional[int] = Field(default=None, gt=0)
    estimated_minutes: Optional[int] = Field(default=None, gt=0)
    order: Optional[int] = None
