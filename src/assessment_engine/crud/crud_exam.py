# src/assessment_engine/crud/crud_exam.py
import logging
import math
import random
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from src.assessment_engine.core import policy
from src.assessment_engine.core.config import settings
from src.assessment_engine.core.exceptions import (
    Conflict, Forbidden, NotFound, ValidationError, validate_payload
)
from src.assessment_engine.core.policy import Caller
from src.assessment_engine.core.sampling import sample_without_replacement
from src.assessment_engine.core.utils import utcnow
from src.assessment_engine.crud.crud_catalog import get_course, get_question, get_topic, is_enrolled
from src.assessment_engine.crud.crud_question import select_question_ids
from src.assessment_engine.db.models import Exam, ExamQuestion, ExamType, MistakeEntry
from src.assessment_engine.schemas.exam import (
    CustomExamCreate, ExamListFilter, ExamUpdate, PracticeRequest, RandomizeRequest, RetestRequest
)
from src.assessment_engine.schemas.question import QuestionFilter

logger = logging.getLogger(__name__)

# Exam types a learner builds through the custom builder; these count
# against the one-open-exam limit.
SELF_SERVICE_TYPES = (ExamType.COURSE, ExamType.QUIZ)


def _default_time_limit(question_count: int) -> int:
    # A minute and a half per question
    return max(1, math.ceil(question_count * 1.5))


def _draw(pool: Set[int], count: int, rng: Optional[random.Random]) -> List[int]:
    if count > len(pool):
        raise Conflict(f"Question pool too small: requested {count}, available {len(pool)}",
                       details={"requested": count, "available": len(pool)})
    return sample_without_replacement(pool, count, rng)


def _link_questions(db: Session, exam: Exam, question_ids: Iterable[int], replace: bool = True):
    """
    Write the sampled order as dense positions. Runs inside the caller's
    transaction so delete-then-insert commits or rolls back as one unit.
    """
    start = 0
    if replace:
        exam.question_links.clear()
        db.flush()
    else:
        start = max((link.position for link in exam.question_links), default=0)
    for offset, question_id in enumerate(question_ids, start=1):
        exam.question_links.append(ExamQuestion(question_id=question_id, position=start + offset))


def _load_readable_exam(db: Session, caller: Caller, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None or not policy.can_read_exam(caller, exam):
        raise NotFound("Exam not found")
    return exam


def _load_manageable_exam(db: Session, caller: Caller, exam_id: int) -> Exam:
    exam = _load_readable_exam(db, caller, exam_id)
    if not policy.can_manage_exam(caller, exam):
        raise Forbidden("Forbidden")
    return exam


def get_exam(db: Session, caller: Caller, exam_id: int) -> Exam:
    return _load_readable_exam(db, caller, exam_id)


def create_custom_exam(db: Session, caller: Caller, payload, rng: random.Random = None, now=None) -> Exam:
    """
    Custom builder: a QUIZ over topics or a COURSE exam, materialised at once.
    Learners need a start/end window and may hold one open-or-pending exam.
    """
    payload = validate_payload(CustomExamCreate, payload)
    now = now or utcnow()

    first_topic = payload.first_topic_id()
    if payload.exam_type is not None:
        exam_type = payload.exam_type
    else:
        exam_type = ExamType.QUIZ if first_topic is not None else ExamType.COURSE

    level = payload.level
    if level is None and exam_type == ExamType.QUIZ and first_topic is not None:
        topic = get_topic(db, first_topic)
        level = topic.level if topic and topic.level else None
    elif level is None and payload.course_id is not None:
        course = get_course(db, payload.course_id)
        level = course.level if course else None

    self_service = policy.requires_exam_window(caller)
    if self_service:
        if payload.start_at is None or payload.end_at is None:
            raise ValidationError("Self-service exams require both start_at and end_at")
        existing = db.query(Exam)\
                     .filter(Exam.created_by_id == caller.id, Exam.exam_type.in_(SELF_SERVICE_TYPES))\
                     .all()
        if any(policy.is_open_or_pending(e, now) for e in existing):
            raise Conflict("You already have an open or upcoming exam")

    pool = select_question_ids(db, QuestionFilter(
        course_id=payload.course_id,
        topic_ids=payload.topic_ids,
        topic_id=payload.topic_id,
        difficulty=payload.difficulty,
        require_full_path=True,
    ))
    chosen = _draw(pool, payload.question_count, rng)

    exam = Exam(
        name=payload.name,
        level=level or "LEVEL1",
        time_limit_minutes=payload.time_limit_minutes,
        exam_type=exam_type,
        topic_id=first_topic if exam_type == ExamType.QUIZ else None,
        course_id=payload.course_id,
        # Admin exams stay hidden until explicitly activated
        active=self_service,
        start_at=payload.start_at,
        end_at=payload.end_at,
        created_by_id=caller.id if self_service else None,
    )
    try:
        db.add(exam)
        _link_questions(db, exam, chosen)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exam)
    logger.info("Custom %s exam %s created by %s with %s questions",
                exam_type.value, exam.id, caller.id, len(chosen))
    return exam


def randomize_exam(db: Session, caller: Caller, exam_id: int, payload, rng: random.Random = None) -> Exam:
    """
    Re-sample an exam's questions. The exam's own course/topic are the
    default filter; anything in the request overrides them.
    """
    payload = validate_payload(RandomizeRequest, payload)
    exam = _load_manageable_exam(db, caller, exam_id)

    overrides_topics = payload.topic_id is not None or payload.topic_ids
    question_filter = QuestionFilter(
        course_id=payload.course_id if payload.course_id is not None else exam.course_id,
        volume_id=payload.volume_id,
        module_id=payload.module_id,
        topic_id=payload.topic_id if overrides_topics else exam.topic_id,
        topic_ids=payload.topic_ids if overrides_topics else None,
        difficulty=payload.difficulty,
        level=payload.level,
        require_full_path=True,
    )
    pool = select_question_ids(db, question_filter)
    if not payload.replace:
        pool -= {link.question_id for link in exam.question_links}
    chosen = _draw(pool, payload.question_count, rng)

    try:
        _link_questions(db, exam, chosen, replace=payload.replace)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exam)
    logger.info("Exam %s randomized: %s questions (%s)", exam.id, len(chosen),
                "replaced" if payload.replace else "appended")
    return exam


def generate_practice_exam(db: Session, caller: Caller, payload, rng: random.Random = None) -> Exam:
    payload = validate_payload(PracticeRequest, payload)

    level = payload.level
    if payload.course_id is not None:
        course = get_course(db, payload.course_id)
        if course is None:
            raise NotFound("Course not found")
        if not policy.bypasses_enrollment(caller) and not is_enrolled(db, caller.id, payload.course_id):
            raise Forbidden("Enrollment required for this course")
        level = level or course.level

    pool = select_question_ids(db, QuestionFilter(
        course_id=payload.course_id,
        volume_id=payload.volume_id,
        module_id=payload.module_id,
        topic_id=payload.topic_id,
        topic_ids=payload.topic_ids,
        difficulty=payload.difficulty,
        level=payload.level,
        require_full_path=True,
    ))
    chosen = _draw(pool, payload.question_count, rng)

    exam = Exam(
        name=payload.name or f"Practice ({len(chosen)} questions)",
        level=level,
        time_limit_minutes=payload.time_limit_minutes or _default_time_limit(len(chosen)),
        exam_type=ExamType.PRACTICE,
        course_id=payload.course_id,
        topic_id=payload.topic_id,
        active=True,
        created_by_id=caller.id,
    )
    try:
        db.add(exam)
        _link_questions(db, exam, chosen)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exam)
    logger.info("Practice exam %s generated for %s", exam.id, caller.id)
    return exam


def generate_retest_exam(db: Session, caller: Caller, payload=None, rng: random.Random = None) -> Exam:
    """Sample only from the caller's unresolved mistake-bank questions."""
    payload = validate_payload(RetestRequest, payload)
    rows = db.query(MistakeEntry.question_id)\
             .filter(MistakeEntry.learner_id == caller.id, MistakeEntry.retested == False)\
             .all()
    pool = {row[0] for row in rows}
    if not pool:
        raise Conflict("Mistake bank is empty")
    count = payload.question_count or min(len(pool), settings.RETEST_DEFAULT_SIZE)
    chosen = _draw(pool, count, rng)

    exam = Exam(
        name=payload.name or f"Retest ({len(chosen)} questions)",
        time_limit_minutes=payload.time_limit_minutes or _default_time_limit(len(chosen)),
        exam_type=ExamType.RETEST,
        active=True,
        created_by_id=caller.id,
    )
    try:
        db.add(exam)
        _link_questions(db, exam, chosen)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(exam)
    logger.info("Retest exam %s generated for %s from %s open mistakes", exam.id, caller.id, len(pool))
    return exam


# --- Administration ---

def update_exam(db: Session, caller: Caller, exam_id: int, payload) -> Exam:
    payload = validate_payload(ExamUpdate, payload)
    exam = _load_manageable_exam(db, caller, exam_id)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "time_limit_minutes", "active"):
        if changes.get(field) is not None:
            setattr(exam, field, changes[field])
    # An explicit null clears that bound of the window
    for field in ("start_at", "end_at"):
        if field in changes:
            setattr(exam, field, changes[field])
    if exam.start_at is not None and exam.end_at is not None and exam.end_at <= exam.start_at:
        db.rollback()
        raise ValidationError("end_at must be after start_at")
    db.commit()
    db.refresh(exam)
    return exam


def delete_exam(db: Session, caller: Caller, exam_id: int):
    """Cascades to attempts, their answers, and the question links."""
    exam = _load_manageable_exam(db, caller, exam_id)
    db.delete(exam)
    db.commit()
    logger.info("Exam %s deleted by %s", exam_id, caller.id)


def link_question(db: Session, caller: Caller, exam_id: int, question_id: int,
                  position: Optional[int] = None) -> ExamQuestion:
    if not policy.can_author_content(caller):
        raise Forbidden("Forbidden")
    exam = _load_readable_exam(db, caller, exam_id)
    if get_question(db, question_id) is None:
        raise NotFound("Question not found")
    if any(link.question_id == question_id for link in exam.question_links):
        raise Conflict("Question already linked to this exam")
    if position is None:
        position = max((link.position for link in exam.question_links), default=0) + 1
    link = ExamQuestion(question_id=question_id, position=position)
    exam.question_links.append(link)
    db.commit()
    db.refresh(link)
    return link


def unlink_question(db: Session, caller: Caller, exam_id: int, question_id: int):
    if not policy.can_author_content(caller):
        raise Forbidden("Forbidden")
    link = db.query(ExamQuestion).filter_by(exam_id=exam_id, question_id=question_id).first()
    if link is None:
        raise NotFound("Question is not linked to this exam")
    db.delete(link)
    db.commit()


def list_exam_questions(db: Session, caller: Caller, exam_id: int) -> List[ExamQuestion]:
    """Links in canonical order; each carries `.position` and `.question`."""
    exam = _load_readable_exam(db, caller, exam_id)
    if not policy.is_admin(caller) and not exam.active:
        raise Forbidden("Forbidden")
    return db.query(ExamQuestion)\
             .filter(ExamQuestion.exam_id == exam.id)\
             .order_by(ExamQuestion.position.asc(), ExamQuestion.created_at.asc())\
             .all()


def _apply_list_filter(query, list_filter: ExamListFilter):
    if list_filter.course_id is not None:
        query = query.filter(Exam.course_id == list_filter.course_id)
    if list_filter.topic_id is not None:
        query = query.filter(Exam.topic_id == list_filter.topic_id)
    if list_filter.exam_type is not None:
        query = query.filter(Exam.exam_type == list_filter.exam_type)
    return query


def list_public_exams(db: Session, caller: Caller, list_filter=None, now=None) -> List[Exam]:
    """Active exams whose window contains now, visible to the caller."""
    list_filter = validate_payload(ExamListFilter, list_filter)
    now = now or utcnow()
    query = db.query(Exam).filter(
        Exam.active == True,
        (Exam.start_at.is_(None)) | (Exam.start_at <= now),
        (Exam.end_at.is_(None)) | (Exam.end_at >= now),
        (Exam.created_by_id.is_(None)) | (Exam.created_by_id == caller.id),
    )
    query = _apply_list_filter(query, list_filter)
    return query.order_by(Exam.created_at.desc(), Exam.id.desc()).all()


def list_exams(db: Session, caller: Caller, list_filter=None) -> List[Exam]:
    if not policy.is_admin(caller):
        raise Forbidden("Forbidden")
    list_filter = validate_payload(ExamListFilter, list_filter)
    query = _apply_list_filter(db.query(Exam), list_filter)
    return query.order_by(Exam.created_at.desc(), Exam.id.desc()).all()

