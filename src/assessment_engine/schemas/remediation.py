# src/assessment_engine/schemas/remediation.py
from typing import Optional

from pydantic import BaseModel, Field


class RevisionUpsert(BaseModel):
    question_id: int
    priority: Optional[int] = Field(default=None, ge=1, le=3, description="Kept when omitted; new entries start at 2")
    note: Optional[str] = None
    reviewed: Optional[bool] = Field(default=None, description="True stamps reviewed_at; anything else resets")
