# src/assessment_engine/crud/crud_question.py
import io
import logging
from typing import Any, Callable, Dict, Optional, Set

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.assessment_engine.core.exceptions import (
    Conflict, EngineError, NotFound, ValidationError, validate_payload
)
from src.assessment_engine.crud.crud_catalog import derive_path, get_course, get_topic
from src.assessment_engine.db.models import McqOption, Question, QuestionType, Vignette
from src.assessment_engine.schemas.question import QuestionCreate, QuestionFilter

logger = logging.getLogger(__name__)


def select_question_ids(db: Session, question_filter=None) -> Set[int]:
    """
    Full set of question ids matching the filter. No pagination: callers need
    the exact population size before they sample.
    """
    f = validate_payload(QuestionFilter, question_filter)
    query = db.query(Question.id)
    if f.course_id is not None:
        query = query.filter(Question.course_id == f.course_id)
    if f.volume_id is not None:
        query = query.filter(Question.volume_id == f.volume_id)
    if f.module_id is not None:
        query = query.filter(Question.module_id == f.module_id)
    topics = f.topic_set()
    if topics:
        query = query.filter(Question.topic_id.in_(topics))
    difficulties = f.difficulty_set()
    if difficulties:
        query = query.filter(Question.difficulty.in_(difficulties))
    if f.level is not None:
        query = query.filter(Question.level == f.level)
    if f.require_full_path:
        query = query.filter(Question.course_id.isnot(None),
                             Question.volume_id.isnot(None),
                             Question.module_id.isnot(None))
    return {row[0] for row in query.all()}


def create_question(db: Session, payload, commit: bool = True) -> Question:
    """
    Store a question with its taxonomy path derived from the topic.
    """
    payload = validate_payload(QuestionCreate, payload)
    if get_topic(db, payload.topic_id) is None:
        raise NotFound("Topic not found")
    path = derive_path(db, payload.topic_id)
    if not path.complete:
        raise Conflict("Topic path is incomplete. Ensure topic has module and module has volume.",
                       details=path._asdict())
    level = payload.level
    if level is None:
        course = get_course(db, path.course_id)
        if course is None:
            raise Conflict("Derived course not found", details=path._asdict())
        level = course.level

    vignette = None
    if payload.question_type == QuestionType.VIGNETTE_MCQ and payload.vignette_text:
        vignette = Vignette(text=payload.vignette_text)
        db.add(vignette)

    question = Question(
        stem=payload.stem,
        question_type=payload.question_type,
        level=level,
        difficulty=payload.difficulty,
        marks=payload.marks,
        topic_id=payload.topic_id,
        course_id=path.course_id,
        volume_id=path.volume_id,
        module_id=path.module_id,
        vignette=vignette,
        qid=payload.qid,
        worked_solution=payload.worked_solution,
    )
    if payload.question_type != QuestionType.CONSTRUCTED_RESPONSE:
        question.options = [McqOption(text=o.text, is_correct=o.is_correct) for o in payload.options]
    db.add(question)
    if commit:
        db.commit()
        db.refresh(question)
    else:
        db.flush()
    return question


# --- Bulk import ---

_HEADER_ALIASES = {
    "question (stem)": "question_text",
    "question_stem": "question_text",
    "stem": "question_text",
    "a": "option_a",
    "b": "option_b",
    "c": "option_c",
    "d": "option_d",
    "worked solution (concise)": "worked_solution",
    "workedsolution": "worked_solution",
}

_TYPE_ALIASES = {
    "TRUE_FALSE": QuestionType.MCQ.value,
    "SHORT_ANSWER": QuestionType.CONSTRUCTED_RESPONSE.value,
}


def _normalise_header(name: str) -> str:
    h = str(name or "").strip().lower()
    return _HEADER_ALIASES.get(h, "_".join(h.split()))


def _map_difficulty(value: str) -> str:
    v = value.strip().upper()
    return {"1": "EASY", "2": "MEDIUM", "3": "HARD"}.get(v, v)


def _row_to_payload(row: Dict[str, str], lettered: bool) -> Dict[str, Any]:
    def get(col):
        return (row.get(col) or "").strip()

    if lettered:
        letters = {k: get(f"option_{k.lower()}") for k in "ABCD"}
        options = [text for text in letters.values() if text]
        correct_raw = get("correct").upper()
        correct = letters.get(correct_raw) or correct_raw
        question_type = QuestionType.MCQ.value if options else QuestionType.CONSTRUCTED_RESPONSE.value
    else:
        answers = get("answers")
        options = [s.strip() for s in answers.split("|") if s.strip()] if answers else []
        correct = get("correct_answer")
        question_type = get("question_type") or QuestionType.MCQ.value
        question_type = _TYPE_ALIASES.get(question_type.upper(), question_type.upper())

    if question_type != QuestionType.CONSTRUCTED_RESPONSE.value:
        if not correct:
            raise ValidationError("Correct answer required for MCQ (use A, B, C, or D in Correct column)")
        if options and correct not in options:
            raise ValidationError(f'Correct answer "{correct}" must match one of the options exactly')

    topic_id = get("topic_id")
    if not topic_id:
        raise ValidationError("Missing required topic_id")
    marks_raw = get("marks")
    try:
        marks = int(float(marks_raw)) if marks_raw else 1
    except (ValueError, OverflowError):
        raise ValidationError("marks must be a positive number")

    return {
        "topic_id": topic_id,
        "stem": get("question_text"),
        "question_type": question_type,
        "difficulty": _map_difficulty(get("difficulty")),
        "marks": marks,
        "qid": get("qid") or None,
        "worked_solution": get("worked_solution") or None,
        "options": [{"text": text, "is_correct": text == correct} for text in options],
    }


def import_questions_csv(db: Session, csv_text: str,
                         on_progress: Optional[Callable[[int, int], None]] = None) -> Dict[str, Any]:
    """
    Import questions row by row. Each good row is committed on its own; bad
    rows are reported back as {row, error} and do not affect the others.
    """
    if not csv_text or not csv_text.strip():
        raise ValidationError("Must provide csv content")
    try:
        df = pd.read_csv(io.StringIO(csv_text), dtype=str, keep_default_na=False, skip_blank_lines=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ValidationError(f"Unreadable CSV: {e}")
    df.columns = [_normalise_header(c) for c in df.columns]

    lettered = "option_a" in df.columns or "qid" in df.columns
    answers_format = "question_text" in df.columns and "question_type" in df.columns
    if not lettered and not answers_format:
        raise ValidationError("Invalid template format. Expected the lettered or the answers column layout.")
    if len(df.index) == 0:
        raise ValidationError("File must include header and at least one data row")

    created = 0
    errors = []
    total = len(df.index)
    for position, record in enumerate(df.to_dict(orient="records")):
        row_number = position + 2  # header is row 1
        if not any(str(v).strip() for v in record.values()):
            continue
        try:
            create_question(db, _row_to_payload(record, lettered))
            created += 1
        except ValidationError as e:
            db.rollback()
            errors.append({"row": row_number, "error": e.message, "details": e.details})
            logger.warning("Import row %s rejected: %s", row_number, e.message)
        except EngineError as e:
            db.rollback()
            errors.append({"row": row_number, "error": e.message})
            logger.warning("Import row %s rejected: %s", row_number, e.message)
        except SQLAlchemyError as e:
            db.rollback()
            errors.append({"row": row_number, "error": "Database error while saving row"})
            logger.warning("Import row %s failed to save: %s", row_number, e)
        if on_progress:
            on_progress(position + 1, total)

    logger.info("Question import finished: %s created, %s rejected", created, len(errors))
    return {"created": created, "errors": errors}
