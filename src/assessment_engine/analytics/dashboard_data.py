# src/assessment_engine/analytics/dashboard_data.py
from typing import Dict, List

import pandas as pd
from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from src.assessment_engine.core import policy
from src.assessment_engine.core.config import settings
from src.assessment_engine.core.exceptions import Forbidden, NotFound
from src.assessment_engine.core.policy import Caller
from src.assessment_engine.core.utils import convert_to_local_time, round_half_up, week_start
from src.assessment_engine.db.models import (
    AttemptStatus, CourseProgress, Enrollment, Exam, ExamAnswer, ExamAttempt, ExamType, Question, Topic
)

PASS_ESTIMATE_FLOOR = 5
PASS_ESTIMATE_CEILING = 95
READY_BONUS = 5


def readiness_score(scores: List[float], window: int = None) -> int:
    """
    Recency-weighted mean of the last `window` scores (oldest first): the
    i-th of them, counting from 1, weighs i.
    """
    window = window or settings.READINESS_WINDOW
    recent = scores[-window:]
    if not recent:
        return 0
    weights = range(1, len(recent) + 1)
    weighted = sum(w * s for w, s in zip(weights, recent))
    return round_half_up(weighted / sum(weights))


def pass_estimate(readiness: int, improvement: float) -> int:
    """Fixed heuristic, not a statistical model."""
    estimate = readiness
    if improvement > 0:
        estimate += round_half_up(improvement / 2)
    if readiness >= settings.PASSING_PERCENT:
        estimate += READY_BONUS
    return max(PASS_ESTIMATE_FLOOR, min(PASS_ESTIMATE_CEILING, estimate))


def _submitted_attempts(db: Session, learner_id: int) -> List[ExamAttempt]:
    return db.query(ExamAttempt)\
             .filter(ExamAttempt.learner_id == learner_id, ExamAttempt.status == AttemptStatus.SUBMITTED)\
             .order_by(ExamAttempt.submitted_at.asc(), ExamAttempt.id.asc())\
             .all()


def get_performance_by_topic(db: Session, attempt_ids: List[int], limit: int = None) -> pd.DataFrame:
    """Correct/total per topic across the given attempts, busiest topics first."""
    if not attempt_ids:
        return pd.DataFrame()
    limit = limit or settings.ANALYTICS_TOP_TOPICS
    results = db.query(
        Question.topic_id,
        Topic.name,
        func.count(ExamAnswer.id).label('total'),
        func.sum(cast(ExamAnswer.is_correct, Integer)).label('correct')
    ).join(Question, ExamAnswer.question_id == Question.id)\
     .outerjoin(Topic, Topic.id == Question.topic_id)\
     .filter(ExamAnswer.attempt_id.in_(attempt_ids))\
     .group_by(Question.topic_id, Topic.name)\
     .all()

    if not results:
        return pd.DataFrame()
    df = pd.DataFrame([tuple(r) for r in results], columns=["topic_id", "topic", "total", "correct"])
    df['correct'] = df['correct'].fillna(0).astype(int)
    df['topic'] = df['topic'].fillna('Unknown')
    df['percent'] = (df['correct'] / df['total'] * 100).round(2)
    return df.sort_values(['total', 'topic_id'], ascending=[False, True]).head(limit)


def get_weekly_scores(attempts: List[ExamAttempt], weeks: int = None) -> pd.DataFrame:
    """Average score per ISO week (Monday start), most recent `weeks` buckets."""
    weeks = weeks or settings.ANALYTICS_WEEKS
    rows = [(week_start(a.submitted_at), a.score_percent or 0.0) for a in attempts if a.submitted_at]
    if not rows:
        return pd.DataFrame()
    df = pd.DataFrame(rows, columns=['week_start', 'score'])
    weekly = df.groupby('week_start', as_index=False)['score'].mean().sort_values('week_start')
    weekly['score'] = weekly['score'].round(2)
    return weekly.tail(weeks)


def get_learner_analytics(db: Session, caller: Caller, learner_id: int = None) -> Dict:
    """
    Cross-attempt summary: average, per-topic accuracy, weekly trend,
    improvement, readiness and the pass estimate derived from them.
    """
    learner_id = caller.id if learner_id is None else learner_id
    if not policy.can_read_learner(caller, learner_id):
        raise NotFound("Learner not found")

    attempts = _submitted_attempts(db, learner_id)
    scores = [a.score_percent or 0.0 for a in attempts]
    average = round(sum(scores) / len(scores), 2) if scores else 0.0
    improvement = round(scores[-1] - scores[0], 2) if scores else 0.0
    readiness = readiness_score(scores)

    topics_df = get_performance_by_topic(db, [a.id for a in attempts])
    by_topic = [
        {"topic_id": int(r.topic_id), "topic": r.topic, "correct": int(r.correct),
         "total": int(r.total), "percent": float(r.percent)}
        for r in topics_df.itertuples(index=False)
    ]
    weekly_df = get_weekly_scores(attempts)
    weekly = [
        {"week_start": r.week_start.isoformat(), "average": float(r.score)}
        for r in weekly_df.itertuples(index=False)
    ]

    return {
        "attempts": len(attempts),
        "average_score": average,
        "by_topic": by_topic,
        "weekly": weekly,
        "improvement": improvement,
        "readiness_score": readiness,
        "pass_estimate": pass_estimate(readiness, improvement),
    }


# --- Enrollment / progress summaries (reporting only) ---

def _latest_course_results(db: Session, learner_id: int, course_ids: List[int]) -> Dict[int, Dict]:
    if not course_ids:
        return {}
    rows = db.query(ExamAttempt, Exam.course_id)\
             .join(Exam, Exam.id == ExamAttempt.exam_id)\
             .filter(ExamAttempt.learner_id == learner_id,
                     ExamAttempt.status == AttemptStatus.SUBMITTED,
                     Exam.exam_type == ExamType.COURSE,
                     Exam.course_id.in_(course_ids))\
             .order_by(ExamAttempt.submitted_at.desc(), ExamAttempt.id.desc())\
             .all()
    results = {}
    for attempt, course_id in rows:
        if course_id in results:
            continue
        results[course_id] = {
            "attempt_id": attempt.id,
            "score_percent": attempt.score_percent,
            "submitted_at": attempt.submitted_at,
            "passed": (attempt.score_percent or 0) >= settings.PASSING_PERCENT,
        }
    return results


def _course_progress_map(db: Session, learner_id: int, course_ids: List[int]) -> Dict[int, CourseProgress]:
    if not course_ids:
        return {}
    rows = db.query(CourseProgress)\
             .filter(CourseProgress.learner_id == learner_id, CourseProgress.course_id.in_(course_ids))\
             .all()
    return {r.course_id: r for r in rows}


def get_my_courses_summary(db: Session, caller: Caller) -> List[Dict]:
    enrollments = db.query(Enrollment)\
                    .filter(Enrollment.learner_id == caller.id)\
                    .order_by(Enrollment.created_at.desc(), Enrollment.id.desc())\
                    .all()
    course_ids = [e.course_id for e in enrollments]
    progress = _course_progress_map(db, caller.id, course_ids)
    results = _latest_course_results(db, caller.id, course_ids)

    items = []
    for e in enrollments:
        p = progress.get(e.course_id)
        items.append({
            "course_id": e.course_id,
            "name": e.course.name if e.course else None,
            "level": e.course.level if e.course else None,
            "enrollment_status": e.status.value,
            "enrolled_at": e.created_at,
            "progress_percent": p.percent if p else 0,
            "time_spent_sec": p.time_spent_sec if p else 0,
            "last_updated": p.updated_at if p else None,
            "exam_result": results.get(e.course_id),
        })
    return items


def get_student_progress_report(db: Session, caller: Caller, learner_id: int) -> List[Dict]:
    """Admin view: per enrolled course, progress, attempts and exam status."""
    if not policy.is_admin(caller):
        raise Forbidden("Forbidden")
    enrollments = db.query(Enrollment)\
                    .filter(Enrollment.learner_id == learner_id)\
                    .order_by(Enrollment.created_at.desc(), Enrollment.id.desc())\
                    .all()
    course_ids = [e.course_id for e in enrollments]
    progress = _course_progress_map(db, learner_id, course_ids)

    attempts_by_course: Dict[int, List[Dict]] = {cid: [] for cid in course_ids}
    if course_ids:
        rows = db.query(ExamAttempt, Exam)\
                 .join(Exam, Exam.id == ExamAttempt.exam_id)\
                 .filter(ExamAttempt.learner_id == learner_id, Exam.course_id.in_(course_ids))\
                 .order_by(ExamAttempt.started_at.desc(), ExamAttempt.id.desc())\
                 .all()
        for attempt, exam in rows:
            attempts_by_course[exam.course_id].append({
                "id": attempt.id,
                "exam_name": exam.name,
                "exam_type": exam.exam_type.value,
                "status": attempt.status.value,
                "score_percent": attempt.score_percent,
                "started_at": convert_to_local_time(attempt.started_at),
                "submitted_at": convert_to_local_time(attempt.submitted_at),
            })

    courses = []
    for e in enrollments:
        p = progress.get(e.course_id)
        course_attempts = attempts_by_course.get(e.course_id, [])
        latest = next((a for a in course_attempts
                       if a["exam_type"] == ExamType.COURSE.value and a["status"] == AttemptStatus.SUBMITTED.value),
                      None)
        status = "Not taken"
        if latest is not None:
            passed = latest["score_percent"] is not None and latest["score_percent"] >= settings.PASSING_PERCENT
            status = "Passed" if passed else "Failed"
        courses.append({
            "course_id": e.course_id,
            "course_name": e.course.name if e.course else None,
            "course_level": e.course.level if e.course else None,
            "enrollment_status": e.status.value,
            "progress_percent": p.percent if p else 0,
            "time_spent_sec": p.time_spent_sec if p else 0,
            "completed_at": p.completed_at if p else None,
            "attempts": course_attempts,
            "overall_exam_status": status,
        })
    return courses
