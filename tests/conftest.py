# tests/conftest.py
import datetime
import os
import tempfile
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="assessment-engine-logs-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.assessment_engine.core.policy import ADMIN, STUDENT, Caller
from src.assessment_engine.crud.crud_question import create_question
from src.assessment_engine.db.models import (
    Base, Course, Enrollment, Module, QuestionType, Topic, Volume
)

NOW = datetime.datetime(2026, 3, 2, 12, 0, 0)  # a Monday


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def admin():
    return Caller(id=1, role=ADMIN)


@pytest.fixture
def learner():
    return Caller(id=100, role=STUDENT)


@pytest.fixture
def other_learner():
    return Caller(id=200, role=STUDENT)


@pytest.fixture
def catalog(db):
    """One LEVEL1 course with a volume, a module and two topics under it."""
    course = Course(name="Level I Programme", level="LEVEL1")
    volume = Volume(name="Volume 1", course=course)
    module = Module(name="Quantitative Methods", volume=volume, level="LEVEL1")
    ethics = Topic(name="Ethics", module=module, level="LEVEL1", order=1)
    rates = Topic(name="Rates and Returns", module=module, level="LEVEL1", order=2)
    db.add_all([course, volume, module, ethics, rates])
    db.commit()
    return SimpleNamespace(course=course, volume=volume, module=module, topics=[ethics, rates])


@pytest.fixture
def make_question(db):
    counter = {"n": 0}

    def _make(topic, difficulty="EASY", question_type=QuestionType.MCQ, **extra):
        counter["n"] += 1
        payload = {
            "stem": f"Sample question number {counter['n']}?",
            "question_type": question_type,
            "difficulty": difficulty,
            "topic_id": topic.id,
        }
        if question_type != QuestionType.CONSTRUCTED_RESPONSE:
            payload["options"] = [
                {"text": "Right answer", "is_correct": True},
                {"text": "Wrong answer", "is_correct": False},
            ]
        payload.update(extra)
        return create_question(db, payload)

    return _make


@pytest.fixture
def questions(catalog, make_question):
    """Six questions on the first topic (3 EASY, 3 HARD), four MEDIUM on the second."""
    ethics, rates = catalog.topics
    items = [make_question(ethics, "EASY") for _ in range(3)]
    items += [make_question(ethics, "HARD") for _ in range(3)]
    items += [make_question(rates, "MEDIUM") for _ in range(4)]
    return items


@pytest.fixture
def enroll(db):
    def _enroll(caller, course):
        enrollment = Enrollment(learner_id=caller.id, course_id=course.id)
        db.add(enrollment)
        db.commit()
        return enrollment
    return _enroll


def correct_option(question):
    return next(o for o in question.options if o.is_correct)


def wrong_option(question):
    return next(o for o in question.options if not o.is_correct)


@pytest.fixture
def options():
    return SimpleNamespace(correct=correct_option, wrong=wrong_option)
