# src/assessment_engine/schemas/question.py

from typing import List, Optional, Set, Union

from pydantic import BaseModel, Field, model_validator

from src.assessment_engine.db.models import Difficulty, QuestionType


class OptionIn(BaseModel):
    text: str = Field(min_length=1, description="Option text as shown to the learner")
    is_correct: bool = Field(default=False, description="Exactly the options flagged correct score automatically")


class QuestionCreate(BaseModel):
    stem: str = Field(min_length=5, description="Question stem")
    question_type: QuestionType
    difficulty: Difficulty
    topic_id: int
    level: Optional[str] = Field(default=None, description="Defaults to the derived course level")
    marks: int = Field(default=1, gt=0)
    vignette_text: Optional[str] = None
    options: List[OptionIn] = Field(default_factory=list)
    qid: Optional[str] = None
    worked_solution: Optional[str] = None

    @model_validator(mode="after")
    def check_options(self):
        if self.question_type == QuestionType.CONSTRUCTED_RESPONSE:
            return self
        if len(self.options) < 2:
            raise ValueError("at least 2 options are required for multiple-choice questions")
        if not any(o.is_correct for o in self.options):
            raise ValueError("at least one option must be flagged correct")
        return self


class QuestionFilter(BaseModel):
    """
    Pool filter. Every field that is present narrows the pool by exact match
    or set membership; absent fields impose no constraint.
    """
    course_id: Optional[int] = None
    volume_id: Optional[int] = None
    module_id: Optional[int] = None
    topic_id: Optional[int] = None
    topic_ids: Optional[List[int]] = None
    difficulty: Optional[Union[Difficulty, List[Difficulty]]] = None
    difficulties: Optional[List[Difficulty]] = None
    level: Optional[str] = None
    require_full_path: bool = Field(default=False, description="Only questions with course/volume/module/topic all set")

    def topic_set(self) -> Optional[Set[int]]:
        ids = set(self.topic_ids or [])
        if self.topic_id is not None:
            ids.add(self.topic_id)
        return ids or None

    def difficulty_set(self) -> Optional[Set[Difficulty]]:
        values = set(self.difficulties or [])
        if isinstance(self.difficulty, list):
            values.update(self.difficulty)
        elif self.difficulty is not None:
            values.add(self.difficulty)
        return values or None
