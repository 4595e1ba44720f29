# tests/test_analytics.py
import datetime

import pytest

from src.assessment_engine.analytics import dashboard_data
from src.assessment_engine.core.exceptions import Forbidden, NotFound
from src.assessment_engine.crud import crud_attempt, crud_exam

WEEK = datetime.timedelta(days=7)


@pytest.fixture
def live_exam(db, admin, catalog, questions):
    exam = crud_exam.create_custom_exam(db, admin, {
        "name": "Rates quiz", "time_limit_minutes": 20, "question_count": 4, "topic_id": catalog.topics[1].id,
    })
    return crud_exam.update_exam(db, admin, exam.id, {"active": True})


def _take(db, caller, exam, correct_count, when):
    attempt = crud_attempt.start_attempt(db, caller, exam.id, now=when)
    for answer in list(attempt.answers)[:correct_count]:
        option = next(o for o in answer.question.options if o.is_correct)
        crud_attempt.autosave_answer(db, caller, attempt.id,
                                     {"question_id": answer.question_id, "selected_option_id": option.id})
    return crud_attempt.submit_attempt(db, caller, attempt.id, now=when)


def test_readiness_weights_recent_scores_more():
    assert dashboard_data.readiness_score([50, 70, 90]) == 77
    assert dashboard_data.readiness_score([0, 0, 0, 100, 100, 100, 100, 100]) == 93
    assert dashboard_data.readiness_score([]) == 0


def test_pass_estimate_is_clamped():
    assert dashboard_data.pass_estimate(0, 0) == 5
    assert dashboard_data.pass_estimate(50, 0) == 50
    assert dashboard_data.pass_estimate(60, -10) == 60
    assert dashboard_data.pass_estimate(70, 0) == 75
    assert dashboard_data.pass_estimate(77, 40) == 95


def test_learner_without_attempts(db, learner):
    result = dashboard_data.get_learner_analytics(db, learner)
    assert result["attempts"] == 0
    assert result["average_score"] == 0.0
    assert result["by_topic"] == []
    assert result["weekly"] == []
    assert result["readiness_score"] == 0
    assert result["pass_estimate"] == 5


def test_learner_analytics_across_attempts(db, learner, catalog, live_exam, now):
    _take(db, learner, live_exam, 2, now)
    _take(db, learner, live_exam, 4, now + WEEK)

    result = dashboard_data.get_learner_analytics(db, learner)
    assert result["attempts"] == 2
    assert result["average_score"] == 75.0
    assert result["improvement"] == 50.0
    assert result["readiness_score"] == 83
    assert result["pass_estimate"] == 95
    assert result["weekly"] == [
        {"week_start": "2026-03-02", "average": 50.0},
        {"week_start": "2026-03-09", "average": 100.0},
    ]
    assert result["by_topic"] == [{
        "topic_id": catalog.topics[1].id, "topic": "Rates and Returns",
        "correct": 6, "total": 8, "percent": 75.0,
    }]


def test_learner_analytics_is_private(db, admin, learner, other_learner, live_exam, now):
    _take(db, learner, live_exam, 1, now)
    with pytest.raises(NotFound):
        dashboard_data.get_learner_analytics(db, other_learner, learner_id=learner.id)
    assert dashboard_data.get_learner_analytics(db, admin, learner_id=learner.id)["attempts"] == 1


@pytest.fixture
def course_exam(db, admin, catalog, questions):
    exam = crud_exam.create_custom_exam(db, admin, {
        "name": "Final", "time_limit_minutes": 60, "question_count": 3, "course_id": catalog.course.id,
    })
    return crud_exam.update_exam(db, admin, exam.id, {"active": True})


def test_student_progress_report_status(db, admin, learner, catalog, course_exam, enroll, now):
    enroll(learner, catalog.course)
    with pytest.raises(Forbidden):
        dashboard_data.get_student_progress_report(db, learner, learner.id)

    report = dashboard_data.get_student_progress_report(db, admin, learner.id)
    assert [c["overall_exam_status"] for c in report] == ["Not taken"]

    _take(db, learner, course_exam, 0, now)
    report = dashboard_data.get_student_progress_report(db, admin, learner.id)
    assert report[0]["overall_exam_status"] == "Failed"

    _take(db, learner, course_exam, 3, now + WEEK)
    report = dashboard_data.get_student_progress_report(db, admin, learner.id)
    assert report[0]["overall_exam_status"] == "Passed"
    assert len(report[0]["attempts"]) == 2
    assert report[0]["enrollment_status"] == "COMPLETED"


def test_my_courses_summary(db, learner, catalog, course_exam, enroll, now):
    enroll(learner, catalog.course)
    summary = dashboard_data.get_my_courses_summary(db, learner)
    assert len(summary) == 1
    assert summary[0]["name"] == "Level I Programme"
    assert summary[0]["progress_percent"] == 0
    assert summary[0]["exam_result"] is None

    _take(db, learner, course_exam, 3, now)
    summary = dashboard_data.get_my_courses_summary(db, learner)
    assert summary[0]["exam_result"]["passed"] is True
    assert summary[0]["exam_result"]["score_percent"] == 100.0
