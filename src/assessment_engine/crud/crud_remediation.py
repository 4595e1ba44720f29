# src/assessment_engine/crud/crud_remediation.py
"""
Mistake bank, revision list and weak-topic aggregation.

All three are keyed per learner and idempotently upserted from attempt
outcomes; nothing here is recomputed from scratch.
"""
import logging
from collections import defaultdict
from typing import List, Optional

from sqlalchemy.orm import Session

from src.assessment_engine.core import policy
from src.assessment_engine.core.exceptions import NotFound, validate_payload
from src.assessment_engine.core.policy import Caller
from src.assessment_engine.core.utils import utcnow
from src.assessment_engine.crud.crud_catalog import get_question
from src.assessment_engine.crud.crud_common import get_or_create
from src.assessment_engine.db.models import (
    ExamAttempt, ExamType, MistakeEntry, QuestionType, RevisionEntry, WeakTopic
)
from src.assessment_engine.schemas.remediation import RevisionUpsert

logger = logging.getLogger(__name__)

DEFAULT_FLAG_PRIORITY = 2


def _learner_scope(caller: Caller, learner_id: Optional[int]) -> int:
    learner_id = caller.id if learner_id is None else learner_id
    if not policy.can_read_learner(caller, learner_id):
        raise NotFound("Learner not found")
    return learner_id


# --- Mistake bank ---

def record_mistake(db: Session, learner_id: int, question_id: int, now=None, commit: bool = True) -> MistakeEntry:
    """(Re-)recording a mistake always un-resolves a previous retest."""
    now = now or utcnow()
    entry, _ = get_or_create(db, MistakeEntry, learner_id=learner_id, question_id=question_id)
    entry.wrong_count = (entry.wrong_count or 0) + 1
    entry.last_wrong_at = now
    entry.retested = False
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def mark_retested(db: Session, learner_id: int, question_id: int, correct: Optional[bool],
                  now=None, commit: bool = True) -> Optional[MistakeEntry]:
    entry = db.query(MistakeEntry).filter_by(learner_id=learner_id, question_id=question_id).first()
    if entry is None:
        return None
    entry.retested = True
    entry.retested_at = now or utcnow()
    entry.retest_correct = correct
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def list_mistakes(db: Session, caller: Caller, learner_id: int = None,
                  unresolved_only: bool = False) -> List[MistakeEntry]:
    learner_id = _learner_scope(caller, learner_id)
    query = db.query(MistakeEntry).filter(MistakeEntry.learner_id == learner_id)
    if unresolved_only:
        query = query.filter(MistakeEntry.retested == False)
    return query.order_by(MistakeEntry.last_wrong_at.desc(), MistakeEntry.id.desc()).all()


# --- Revision list ---

def upsert_revision(db: Session, caller: Caller, payload, now=None, commit: bool = True) -> RevisionEntry:
    """Any update resets `reviewed` unless it explicitly sets reviewed=True."""
    payload = validate_payload(RevisionUpsert, payload)
    if get_question(db, payload.question_id) is None:
        raise NotFound("Question not found")
    entry, _ = get_or_create(db, RevisionEntry, learner_id=caller.id, question_id=payload.question_id,
                             defaults={"priority": DEFAULT_FLAG_PRIORITY})
    if payload.priority is not None:
        entry.priority = payload.priority
    if payload.note is not None:
        entry.note = payload.note
    if payload.reviewed is True:
        entry.reviewed = True
        entry.reviewed_at = now or utcnow()
    else:
        entry.reviewed = False
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def remove_revision(db: Session, caller: Caller, question_id: int):
    entry = db.query(RevisionEntry).filter_by(learner_id=caller.id, question_id=question_id).first()
    if entry is None:
        raise NotFound("Revision entry not found")
    db.delete(entry)
    db.commit()


def list_revision(db: Session, caller: Caller, learner_id: int = None,
                  include_reviewed: bool = True) -> List[RevisionEntry]:
    learner_id = _learner_scope(caller, learner_id)
    query = db.query(RevisionEntry).filter(RevisionEntry.learner_id == learner_id)
    if not include_reviewed:
        query = query.filter(RevisionEntry.reviewed == False)
    # priority 1 is the most urgent
    return query.order_by(RevisionEntry.priority.asc(), RevisionEntry.updated_at.desc()).all()


# --- Weak topics ---

def increment_weak_topic(db: Session, learner_id: int, topic_id: int, wrong: int, total: int,
                         commit: bool = True) -> WeakTopic:
    """Running lifetime aggregate; counts are added, never overwritten."""
    entry, _ = get_or_create(db, WeakTopic, learner_id=learner_id, topic_id=topic_id)
    entry.wrong_count = (entry.wrong_count or 0) + wrong
    entry.total_count = (entry.total_count or 0) + total
    if entry.total_count > 0:
        entry.percent = 100.0 * (entry.total_count - entry.wrong_count) / entry.total_count
    else:
        entry.percent = 0.0
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def list_weak_topics(db: Session, caller: Caller, learner_id: int = None, limit: int = None) -> List[WeakTopic]:
    learner_id = _learner_scope(caller, learner_id)
    query = db.query(WeakTopic)\
              .filter(WeakTopic.learner_id == learner_id, WeakTopic.total_count > 0)\
              .order_by(WeakTopic.percent.asc(), WeakTopic.total_count.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


# --- Derivation from a submitted attempt ---

def record_attempt_outcomes(db: Session, attempt: ExamAttempt, now=None):
    """
    Feed one submitted attempt into the three remediation structures.
    Does not commit; runs inside the submit transaction.
    """
    now = now or utcnow()
    learner_id = attempt.learner_id
    is_retest = attempt.exam is not None and attempt.exam.exam_type == ExamType.RETEST
    topic_totals = defaultdict(lambda: [0, 0])  # topic_id -> [wrong, total]

    for answer in attempt.answers:
        question = answer.question
        if question is None:
            continue
        correct = answer.is_correct is True
        answered = answer.selected_option_id is not None or bool(answer.text_answer)

        if is_retest and answered:
            mark_retested(db, learner_id, question.id, answer.is_correct, now=now, commit=False)
        # Constructed responses have no automatic grading, so they never enter the bank
        if not correct and question.question_type != QuestionType.CONSTRUCTED_RESPONSE:
            record_mistake(db, learner_id, question.id, now=now, commit=False)
        if answer.flagged:
            entry, _ = get_or_create(db, RevisionEntry, learner_id=learner_id, question_id=question.id,
                                     defaults={"priority": DEFAULT_FLAG_PRIORITY})
            entry.reviewed = False

        totals = topic_totals[question.topic_id]
        totals[1] += 1
        if not correct:
            totals[0] += 1

    for topic_id, (wrong, total) in topic_totals.items():
        increment_weak_topic(db, learner_id, topic_id, wrong, total, commit=False)

    logger.info("Remediation updated for attempt %s (%s topics)", attempt.id, len(topic_totals))
