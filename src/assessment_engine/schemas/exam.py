# src/assessment_engine/schemas/exam.py
import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from src.assessment_engine.core.utils import to_naive_utc
from src.assessment_engine.db.models import Difficulty, ExamType


class _WindowMixin(BaseModel):

    @field_validator("start_at", "end_at", mode="after", check_fields=False)
    @classmethod
    def normalise_datetime(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_window_order(self):
        start_at = getattr(self, "start_at", None)
        end_at = getattr(self, "end_at", None)
        if start_at is not None and end_at is not None and end_at <= start_at:
            raise ValueError("end_at must be after start_at")
        return self


class CustomExamCreate(_WindowMixin):
    name: str = Field(min_length=3)
    time_limit_minutes: int = Field(gt=0)
    question_count: int = Field(gt=0)
    level: Optional[str] = None
    exam_type: Optional[ExamType] = Field(default=None, description="COURSE or QUIZ; inferred when absent")
    topic_id: Optional[int] = None
    topic_ids: Optional[List[int]] = None
    course_id: Optional[int] = None
    difficulty: Optional[Union[Difficulty, List[Difficulty]]] = None
    start_at: Optional[datetime.datetime] = None
    end_at: Optional[datetime.datetime] = None

    @field_validator("exam_type")
    @classmethod
    def only_builder_types(cls, value):
        if value not in (None, ExamType.COURSE, ExamType.QUIZ):
            raise ValueError("custom exams are COURSE or QUIZ")
        return value

    def first_topic_id(self) -> Optional[int]:
        if self.topic_id is not None:
            return self.topic_id
        return self.topic_ids[0] if self.topic_ids else None


class ExamUpdate(_WindowMixin):
    name: Optional[str] = Field(default=None, min_length=1)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    active: Optional[bool] = None
    start_at: Optional[datetime.datetime] = None
    end_at: Optional[datetime.datetime] = None


class RandomizeRequest(BaseModel):
    question_count: int = Field(gt=0)
    course_id: Optional[int] = None
    volume_id: Optional[int] = None
    module_id: Optional[int] = None
    topic_id: Optional[int] = None
    topic_ids: Optional[List[int]] = None
    difficulty: Optional[Union[Difficulty, List[Difficulty]]] = None
    level: Optional[str] = None
    replace: bool = Field(default=True, description="False appends to the existing question list")


class PracticeRequest(BaseModel):
    question_count: int = Field(gt=0)
    name: Optional[str] = Field(default=None, min_length=3)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    course_id: Optional[int] = None
    volume_id: Optional[int] = None
    module_id: Optional[int] = None
    topic_id: Optional[int] = None
    topic_ids: Optional[List[int]] = None
    difficulty: Optional[Union[Difficulty, List[Difficulty]]] = None
    level: Optional[str] = None


class RetestRequest(BaseModel):
    question_count: Optional[int] = Field(default=None, gt=0, description="Defaults to min(available, 20)")
    name: Optional[str] = Field(default=None, min_length=3)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)


class ExamListFilter(BaseModel):
    course_id: Optional[int] = None
    topic_id: Optional[int] = None
    exam_type: Optional[ExamType] = None
