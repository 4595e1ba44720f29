# src/assessment_engine/schemas/attempt.py
from typing import Optional

from pydantic import BaseModel, Field


class AnswerPayload(BaseModel):
    """Autosave body. Only the fields actually sent are written."""
    question_id: int
    selected_option_id: Optional[int] = None
    text_answer: Optional[str] = None
    flagged: Optional[bool] = None
    time_spent_sec: Optional[int] = Field(default=None, ge=0)
