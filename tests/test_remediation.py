# tests/test_remediation.py
import pytest

from src.assessment_engine.core.exceptions import NotFound, ValidationError
from src.assessment_engine.crud import crud_attempt, crud_exam, crud_remediation
from src.assessment_engine.db.models import MistakeEntry, QuestionType


@pytest.fixture
def live_exam(db, admin, catalog, questions):
    exam = crud_exam.create_custom_exam(db, admin, {
        "name": "Rates quiz", "time_limit_minutes": 20, "question_count": 4, "topic_id": catalog.topics[1].id,
    })
    return crud_exam.update_exam(db, admin, exam.id, {"active": True})


def _take(db, caller, exam, answers, now=None):
    """answers maps question -> 'right' | 'wrong' | 'flag'; everything else is left blank."""
    attempt = crud_attempt.start_attempt(db, caller, exam.id, now=now)
    for question, how in answers.items():
        payload = {"question_id": question.id}
        if how == "right":
            payload["selected_option_id"] = next(o.id for o in question.options if o.is_correct)
        elif how == "wrong":
            payload["selected_option_id"] = next(o.id for o in question.options if not o.is_correct)
        else:
            payload["flagged"] = True
        crud_attempt.autosave_answer(db, caller, attempt.id, payload)
    return crud_attempt.submit_attempt(db, caller, attempt.id, now=now)


def _linked(db, admin, exam):
    return [link.question for link in crud_exam.list_exam_questions(db, admin, exam.id)]


def test_submit_feeds_mistakes_weak_topics_and_revision(db, admin, learner, catalog, live_exam):
    q1, q2, q3, q4 = _linked(db, admin, live_exam)
    _take(db, learner, live_exam, {q1: "right", q2: "wrong", q3: "flag"})

    mistakes = crud_remediation.list_mistakes(db, learner)
    # q2 answered wrong, q3 and q4 left blank
    assert {m.question_id for m in mistakes} == {q2.id, q3.id, q4.id}
    assert all(m.wrong_count == 1 and m.retested is False for m in mistakes)

    revision = crud_remediation.list_revision(db, learner)
    assert [(r.question_id, r.priority, r.reviewed) for r in revision] == [(q3.id, 2, False)]

    weak = crud_remediation.list_weak_topics(db, learner)
    assert len(weak) == 1
    assert weak[0].topic_id == catalog.topics[1].id
    assert (weak[0].wrong_count, weak[0].total_count) == (3, 4)
    assert weak[0].percent == 25.0


def test_weak_topic_counts_accumulate(db, admin, learner, live_exam):
    q1, q2, q3, q4 = _linked(db, admin, live_exam)
    _take(db, learner, live_exam, {q1: "right", q2: "right", q3: "right", q4: "right"})
    _take(db, learner, live_exam, {q1: "wrong"})
    weak = crud_remediation.list_weak_topics(db, learner)[0]
    assert (weak.wrong_count, weak.total_count) == (4, 8)
    assert weak.percent == 50.0


def test_repeated_mistake_increments_count(db, admin, learner, live_exam):
    q1 = _linked(db, admin, live_exam)[0]
    _take(db, learner, live_exam, {q1: "wrong"})
    _take(db, learner, live_exam, {q1: "wrong"})
    entry = db.query(MistakeEntry).filter_by(learner_id=learner.id, question_id=q1.id).one()
    assert entry.wrong_count == 2


def test_constructed_response_never_enters_mistake_bank(db, admin, learner, catalog, make_question):
    cr = make_question(catalog.topics[0], question_type=QuestionType.CONSTRUCTED_RESPONSE)
    exam = crud_exam.create_custom_exam(db, admin, {
        "name": "Essay", "time_limit_minutes": 20, "question_count": 1, "topic_id": catalog.topics[0].id,
    })
    crud_exam.update_exam(db, admin, exam.id, {"active": True})
    attempt = crud_attempt.start_attempt(db, learner, exam.id)
    crud_attempt.autosave_answer(db, learner, attempt.id, {"question_id": cr.id, "text_answer": "A long essay."})
    submitted = crud_attempt.submit_attempt(db, learner, attempt.id)

    assert submitted.score_percent == 0.0
    assert crud_remediation.list_mistakes(db, learner) == []
    weak = crud_remediation.list_weak_topics(db, learner)[0]
    assert (weak.wrong_count, weak.total_count) == (1, 1)


def test_retest_resolves_mistakes_answered_correctly(db, admin, learner, live_exam):
    q1, q2, q3, q4 = _linked(db, admin, live_exam)
    _take(db, learner, live_exam, {q1: "wrong", q2: "wrong", q3: "right", q4: "right"})

    retest = crud_exam.generate_retest_exam(db, learner)
    linked = {link.question_id: link.question for link in retest.question_links}
    assert set(linked) == {q1.id, q2.id}
    _take(db, learner, retest, {linked[q1.id]: "right", linked[q2.id]: "wrong"})

    fixed = db.query(MistakeEntry).filter_by(learner_id=learner.id, question_id=q1.id).one()
    still = db.query(MistakeEntry).filter_by(learner_id=learner.id, question_id=q2.id).one()
    assert fixed.retested is True and fixed.retest_correct is True
    assert still.retested is False and still.wrong_count == 2
    open_ids = {m.question_id for m in crud_remediation.list_mistakes(db, learner, unresolved_only=True)}
    assert open_ids == {q2.id}


def test_revision_reviewed_flag_resets_on_update(db, learner, questions, now):
    q = questions[0]
    entry = crud_remediation.upsert_revision(db, learner, {"question_id": q.id, "priority": 1, "reviewed": True},
                                             now=now)
    assert entry.reviewed is True
    assert entry.reviewed_at == now

    entry = crud_remediation.upsert_revision(db, learner, {"question_id": q.id, "note": "re-read the reading"})
    assert entry.reviewed is False
    assert entry.note == "re-read the reading"
    assert entry.priority == 1
    assert len(crud_remediation.list_revision(db, learner)) == 1

    crud_remediation.remove_revision(db, learner, q.id)
    assert crud_remediation.list_revision(db, learner) == []
    with pytest.raises(NotFound):
        crud_remediation.remove_revision(db, learner, q.id)


def test_revision_validation(db, learner, questions):
    with pytest.raises(ValidationError):
        crud_remediation.upsert_revision(db, learner, {"question_id": questions[0].id, "priority": 7})
    with pytest.raises(NotFound):
        crud_remediation.upsert_revision(db, learner, {"question_id": 9999})


def test_remediation_lists_are_private(db, admin, learner, other_learner, questions):
    crud_remediation.record_mistake(db, learner.id, questions[0].id)
    with pytest.raises(NotFound):
        crud_remediation.list_mistakes(db, other_learner, learner_id=learner.id)
    assert len(crud_remediation.list_mistakes(db, admin, learner_id=learner.id)) == 1
    assert crud_remediation.list_mistakes(db, other_learner) == []


def test_revision_priority_kept_when_omitted(db, learner, questions):
    q = questions[1]
    created = crud_remediation.upsert_revision(db, learner, {"question_id": q.id})
    assert created.priority == 2

    crud_remediation.upsert_revision(db, learner, {"question_id": q.id, "priority": 1})
    entry = crud_remediation.upsert_revision(db, learner, {"question_id": q.id, "reviewed": True})
    assert entry.priority == 1
    entry = crud_remediation.upsert_revision(db, learner, {"question_id": q.id, "note": "re-read"})
    assert entry.priority == 1
    assert entry.reviewed is False
