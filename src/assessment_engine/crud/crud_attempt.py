# src/assessment_engine/crud/crud_attempt.py
"""
Attempt lifecycle: IN_PROGRESS -> SUBMITTED (terminal).

Attempts owned by someone else are reported as missing, never forbidden.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.assessment_engine.core import policy
from src.assessment_engine.core.exceptions import (
    Conflict, Forbidden, NotFound, ValidationError, WindowClosed, validate_payload
)
from src.assessment_engine.core.policy import Caller
from src.assessment_engine.core.utils import utcnow
from src.assessment_engine.crud.crud_catalog import is_enrolled, mark_enrollment_completed
from src.assessment_engine.crud.crud_common import get_or_create
from src.assessment_engine.crud.crud_remediation import record_attempt_outcomes
from src.assessment_engine.db.models import (
    AttemptStatus, Exam, ExamAnswer, ExamAttempt, ExamQuestion, ExamType, McqOption
)
from src.assessment_engine.schemas.attempt import AnswerPayload

logger = logging.getLogger(__name__)


def score_percent(correct: int, total: int) -> float:
    # Ungraded (None) answers count as incorrect; zero answers score 0
    return 100.0 * correct / max(1, total)


def _load_owned_attempt(db: Session, caller: Caller, attempt_id: int) -> ExamAttempt:
    attempt = db.get(ExamAttempt, attempt_id)
    if attempt is None or not policy.can_read_attempt(caller, attempt):
        raise NotFound("Attempt not found")
    return attempt


def start_attempt(db: Session, caller: Caller, exam_id: int, now=None) -> ExamAttempt:
    """
    Open a timed attempt and pre-create one empty answer per exam question,
    in the exam's canonical order.
    """
    now = now or utcnow()
    exam = db.get(Exam, exam_id)
    if exam is None or not policy.can_read_exam(caller, exam):
        raise NotFound("Exam not found")
    if not exam.active:
        raise Forbidden("Exam is not active")
    if exam.exam_type == ExamType.COURSE and exam.course_id is not None:
        if not policy.bypasses_enrollment(caller) and not is_enrolled(db, caller.id, exam.course_id):
            raise Forbidden("Enrollment required for this course exam")
    if not policy.window_contains(exam.start_at, exam.end_at, now):
        raise WindowClosed("Exam is not available at this time", details={
            "start_at": exam.start_at.isoformat() if exam.start_at else None,
            "end_at": exam.end_at.isoformat() if exam.end_at else None,
        })

    links = db.query(ExamQuestion)\
              .filter(ExamQuestion.exam_id == exam.id)\
              .order_by(ExamQuestion.position.asc(), ExamQuestion.created_at.asc())\
              .all()
    attempt = ExamAttempt(
        exam_id=exam.id,
        learner_id=caller.id,
        status=AttemptStatus.IN_PROGRESS,
        time_remaining_sec=exam.time_limit_minutes * 60,
        started_at=now,
    )
    attempt.answers = [
        ExamAnswer(question_id=link.question_id, flagged=False, time_spent_sec=0)
        for link in links
    ]
    try:
        db.add(attempt)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(attempt)
    logger.info("Attempt %s started on exam %s by %s (%s questions)", attempt.id, exam.id, caller.id, len(links))
    return attempt


def _resolve_option(db: Session, question_id: int, option_id: int) -> Optional[McqOption]:
    option = db.get(McqOption, option_id)
    if option is None or option.question_id != question_id:
        return None
    return option


def autosave_answer(db: Session, caller: Caller, attempt_id: int, payload) -> ExamAnswer:
    """
    Upsert one (attempt, question) answer. Only the fields present in the
    payload are written; the latest write wins field by field. Correctness
    is resolved here from the chosen option, never at submit time.
    """
    payload = validate_payload(AnswerPayload, payload)
    attempt = _load_owned_attempt(db, caller, attempt_id)
    if attempt.status == AttemptStatus.SUBMITTED:
        raise Conflict("Attempt already submitted")
    linked = db.query(ExamQuestion.id)\
               .filter_by(exam_id=attempt.exam_id, question_id=payload.question_id)\
               .first()
    if linked is None:
        raise ValidationError("Question is not part of this exam")

    sent = payload.model_dump(exclude_unset=True)
    answer, _ = get_or_create(db, ExamAnswer, attempt_id=attempt.id, question_id=payload.question_id,
                              defaults={"flagged": False, "time_spent_sec": 0})

    if sent.get("selected_option_id") is not None:
        option = _resolve_option(db, payload.question_id, payload.selected_option_id)
        answer.selected_option_id = option.id if option else None
        answer.is_correct = option.is_correct if option else None
    if sent.get("text_answer") is not None:
        answer.text_answer = payload.text_answer
    if sent.get("flagged") is not None:
        answer.flagged = payload.flagged
    if sent.get("time_spent_sec") is not None:
        answer.time_spent_sec = payload.time_spent_sec

    db.commit()
    db.refresh(answer)
    return answer


def submit_attempt(db: Session, caller: Caller, attempt_id: int, now=None) -> ExamAttempt:
    """
    Score and close an attempt. A second submit is a no-op and never
    re-scores. COURSE exams mark the enrollment completed whatever the score.
    """
    attempt = _load_owned_attempt(db, caller, attempt_id)
    if attempt.status == AttemptStatus.SUBMITTED:
        return attempt
    now = now or utcnow()

    answers = list(attempt.answers)
    correct = sum(1 for a in answers if a.is_correct is True)
    attempt.score_percent = score_percent(correct, len(answers))
    attempt.status = AttemptStatus.SUBMITTED
    attempt.submitted_at = now

    exam = attempt.exam
    try:
        if exam is not None and exam.exam_type == ExamType.COURSE and exam.course_id is not None:
            mark_enrollment_completed(db, attempt.learner_id, exam.course_id)
        record_attempt_outcomes(db, attempt, now=now)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(attempt)
    logger.info("Attempt %s submitted: %s/%s correct (%.1f%%)", attempt.id, correct, len(answers),
                attempt.score_percent)
    return attempt


# --- Read side ---

def get_attempt(db: Session, caller: Caller, attempt_id: int) -> Dict:
    """The attempt plus its answers sorted into the exam's question order."""
    attempt = _load_owned_attempt(db, caller, attempt_id)
    links = db.query(ExamQuestion.question_id)\
              .filter(ExamQuestion.exam_id == attempt.exam_id)\
              .order_by(ExamQuestion.position.asc(), ExamQuestion.created_at.asc())\
              .all()
    order = {row[0]: index for index, row in enumerate(links)}
    # Questions no longer linked sort last
    answers = sorted(attempt.answers, key=lambda a: order.get(a.question_id, len(order)))
    return {"attempt": attempt, "answers": answers, "exam": attempt.exam}


def list_my_attempts(db: Session, caller: Caller) -> List[ExamAttempt]:
    return db.query(ExamAttempt)\
             .filter(ExamAttempt.learner_id == caller.id)\
             .order_by(ExamAttempt.started_at.desc(), ExamAttempt.id.desc())\
             .all()


def attempt_topic_breakdown(db: Session, caller: Caller, attempt_id: int) -> List[Dict]:
    attempt = _load_owned_attempt(db, caller, attempt_id)
    by_topic = {}
    for answer in attempt.answers:
        topic = answer.question.topic if answer.question else None
        name = topic.name if topic else "Unknown"
        agg = by_topic.setdefault(name, {"topic": name, "correct": 0, "total": 0})
        agg["total"] += 1
        if answer.is_correct:
            agg["correct"] += 1
    for agg in by_topic.values():
        agg["percent"] = score_percent(agg["correct"], agg["total"])
    return list(by_topic.values())
