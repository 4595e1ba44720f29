# tests/test_question_pool.py
import pytest

from src.assessment_engine.core.exceptions import Conflict, NotFound, ValidationError
from src.assessment_engine.crud.crud_question import create_question, select_question_ids
from src.assessment_engine.db.models import Difficulty, Question, QuestionType, Topic


def test_create_question_derives_path_and_level(db, catalog, make_question):
    q = make_question(catalog.topics[0])
    assert q.course_id == catalog.course.id
    assert q.volume_id == catalog.volume.id
    assert q.module_id == catalog.module.id
    assert q.level == "LEVEL1"
    assert len(q.options) == 2


def test_create_question_rejects_unknown_topic(db, catalog):
    with pytest.raises(NotFound):
        create_question(db, {
            "stem": "Which is right?", "question_type": "MCQ", "difficulty": "EASY", "topic_id": 999,
            "options": [{"text": "a", "is_correct": True}, {"text": "b"}],
        })


def test_create_question_rejects_topic_without_module(db):
    orphan = Topic(name="Orphan", level="LEVEL1")
    db.add(orphan)
    db.commit()
    with pytest.raises(Conflict):
        create_question(db, {
            "stem": "Which is right?", "question_type": "MCQ", "difficulty": "EASY", "topic_id": orphan.id,
            "options": [{"text": "a", "is_correct": True}, {"text": "b"}],
        })
    assert db.query(Question).count() == 0


def test_multiple_choice_needs_a_correct_option(db, catalog):
    with pytest.raises(ValidationError) as exc:
        create_question(db, {
            "stem": "Which is right?", "question_type": "MCQ", "difficulty": "EASY",
            "topic_id": catalog.topics[0].id,
            "options": [{"text": "a"}, {"text": "b"}],
        })
    assert exc.value.details


def test_constructed_response_has_no_options(db, catalog, make_question):
    q = make_question(catalog.topics[0], question_type=QuestionType.CONSTRUCTED_RESPONSE)
    assert q.options == []


def test_vignette_question_stores_case_text(db, catalog, make_question):
    q = make_question(catalog.topics[0], question_type=QuestionType.VIGNETTE_MCQ,
                      vignette_text="An analyst is reviewing a portfolio.")
    assert q.vignette is not None
    assert q.vignette.text.startswith("An analyst")


def test_filters_narrow_by_topic_and_difficulty(db, catalog, questions):
    ethics, rates = catalog.topics
    assert len(select_question_ids(db, {"topic_id": ethics.id})) == 6
    assert len(select_question_ids(db, {"topic_id": ethics.id, "difficulty": "HARD"})) == 3
    assert len(select_question_ids(db, {"difficulty": ["EASY", "MEDIUM"]})) == 7
    assert len(select_question_ids(db, {"topic_ids": [ethics.id, rates.id]})) == 10
    assert select_question_ids(db, {"course_id": catalog.course.id}) == {q.id for q in questions}


def test_absent_filter_imposes_no_constraint(db, questions):
    assert len(select_question_ids(db)) == len(questions)


def test_full_path_filter_excludes_partial_questions(db, catalog, questions):
    stray = Question(stem="Legacy question", question_type=QuestionType.MCQ, difficulty=Difficulty.EASY,
                     topic_id=catalog.topics[0].id)
    db.add(stray)
    db.commit()
    assert stray.id in select_question_ids(db, {"topic_id": catalog.topics[0].id})
    assert stray.id not in select_question_ids(db, {"topic_id": catalog.topics[0].id, "require_full_path": True})


def test_bad_filter_raises_validation_error(db):
    with pytest.raises(ValidationError):
        select_question_ids(db, {"difficulty": "IMPOSSIBLE"})
