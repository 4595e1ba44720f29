# src/assessment_engine/db/models.py
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    JSON,
    Text,
    Float,
    Enum,
    UniqueConstraint,
)
from sqlalchemy import Boolean, ForeignKey
from sqlalchemy.orm import declarative_base, relationship

from src.assessment_engine.core.utils import utcnow

Base = declarative_base()


class QuestionType(str, enum.Enum):
    MCQ = "MCQ"
    VIGNETTE_MCQ = "VIGNETTE_MCQ"
    CONSTRUCTED_RESPONSE = "CONSTRUCTED_RESPONSE"


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class ExamType(str, enum.Enum):
    COURSE = "COURSE"
    QUIZ = "QUIZ"
    PRACTICE = "PRACTICE"
    RETEST = "RETEST"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class MaterialKind(str, enum.Enum):
    LINK = "LINK"
    PDF = "PDF"
    VIDEO = "VIDEO"
    IMAGE = "IMAGE"
    HTML = "HTML"


# --- Catalog (owned by the course/content collaborator, read here) ---

class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    level = Column(String, nullable=False, default="LEVEL1")
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)


class Volume(Base):
    __tablename__ = "volumes"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    name = Column(String, nullable=False)
    order = Column(Integer, default=1)

    course = relationship("Course")


class Module(Base):
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, index=True)
    volume_id = Column(Integer, ForeignKey("volumes.id"), nullable=True)
    name = Column(String, nullable=False)
    level = Column(String, nullable=True)
    order = Column(Integer, default=1)

    volume = relationship("Volume")


class Topic(Base):
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=True)
    name = Column(String, nullable=False)
    level = Column(String, nullable=True, index=True)  # course roll-up matches on this
    order = Column(Integer, default=1)

    module = relationship("Module")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("learner_id", "course_id", name="uq_enrollment_learner_course"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    status = Column(Enum(EnrollmentStatus), default=EnrollmentStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    course = relationship("Course")


class LearningMaterial(Base):
    __tablename__ = "learning_materials"

    id = Column(Integer, primary_key=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False, index=True)
    kind = Column(Enum(MaterialKind), nullable=False)
    title = Column(String, nullable=False)
    url = Column(String, nullable=True)
    content_html = Column(Text, nullable=True)
    duration_sec = Column(Integer, nullable=True)
    estimated_seconds = Column(Integer, nullable=True)  # derived once at authoring time
    order = Column(Integer, default=1)
    created_at = Column(DateTime, default=utcnow)


# --- Question pool ---

class Vignette(Base):
    __tablename__ = "vignettes"

    id = Column(Integer, primary_key=True, index=True)
    text = Column(Text, nullable=False)


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    stem = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False)
    level = Column(String, nullable=True, index=True)
    difficulty = Column(Enum(Difficulty), nullable=False, index=True)
    marks = Column(Integer, default=1, nullable=False)
    # Denormalised taxonomy path, derived from the topic at write time
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False, index=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=True, index=True)
    volume_id = Column(Integer, ForeignKey("volumes.id"), nullable=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True, index=True)
    vignette_id = Column(Integer, ForeignKey("vignettes.id"), nullable=True)
    qid = Column(String, nullable=True)
    worked_solution = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    options = relationship("McqOption", back_populates="question", cascade="all, delete-orphan",
                           order_by="McqOption.id")
    vignette = relationship("Vignette")
    topic = relationship("Topic")


class McqOption(Base):
    __tablename__ = "mcq_options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)

    question = relationship("Question", back_populates="options")


# --- Exams and attempts ---

class Exam(Base):
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    level = Column(String, nullable=True)
    time_limit_minutes = Column(Integer, nullable=False)
    exam_type = Column(Enum(ExamType), nullable=False, default=ExamType.COURSE)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=True)
    active = Column(Boolean, default=False, nullable=False)
    start_at = Column(DateTime, nullable=True)
    end_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, nullable=True, index=True)  # None = admin-authored/public
    created_at = Column(DateTime, default=utcnow)

    question_links = relationship("ExamQuestion", back_populates="exam", cascade="all, delete-orphan",
                                  order_by="ExamQuestion.position")
    attempts = relationship("ExamAttempt", back_populates="exam", cascade="all, delete-orphan")


class ExamQuestion(Base):
    __tablename__ = "exam_questions"
    __table_args__ = (UniqueConstraint("exam_id", "question_id", name="uq_exam_question"),)

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    exam = relationship("Exam", back_populates="question_links")
    question = relationship("Question")


class ExamAttempt(Base):
    __tablename__ = "exam_attempts"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    status = Column(Enum(AttemptStatus), default=AttemptStatus.IN_PROGRESS, nullable=False)
    time_remaining_sec = Column(Integer, nullable=False)
    started_at = Column(DateTime, default=utcnow)
    submitted_at = Column(DateTime, nullable=True)
    score_percent = Column(Float, nullable=True)  # None until submitted

    exam = relationship("Exam", back_populates="attempts")
    answers = relationship("ExamAnswer", back_populates="attempt", cascade="all, delete-orphan")


class ExamAnswer(Base):
    __tablename__ = "exam_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("exam_attempts.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    selected_option_id = Column(Integer, ForeignKey("mcq_options.id"), nullable=True)
    text_answer = Column(Text, nullable=True)
    flagged = Column(Boolean, default=False, nullable=False)
    is_correct = Column(Boolean, nullable=True)  # resolved at save time, never at submit
    time_spent_sec = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    attempt = relationship("ExamAttempt", back_populates="answers")
    question = relationship("Question")
    selected_option = relationship("McqOption")


# --- Remediation ---

class MistakeEntry(Base):
    __tablename__ = "mistake_entries"
    __table_args__ = (UniqueConstraint("learner_id", "question_id", name="uq_mistake_learner_question"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    wrong_count = Column(Integer, default=0, nullable=False)
    last_wrong_at = Column(DateTime, default=utcnow)
    retested = Column(Boolean, default=False, nullable=False)
    retested_at = Column(DateTime, nullable=True)
    retest_correct = Column(Boolean, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    question = relationship("Question")


class RevisionEntry(Base):
    __tablename__ = "revision_entries"
    __table_args__ = (UniqueConstraint("learner_id", "question_id", name="uq_revision_learner_question"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    priority = Column(Integer, default=2, nullable=False)  # 1..3
    note = Column(Text, nullable=True)
    reviewed = Column(Boolean, default=False, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    question = relationship("Question")


class WeakTopic(Base):
    __tablename__ = "weak_topics"
    __table_args__ = (UniqueConstraint("learner_id", "topic_id", name="uq_weak_topic_learner_topic"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    wrong_count = Column(Integer, default=0, nullable=False)
    total_count = Column(Integer, default=0, nullable=False)
    percent = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    topic = relationship("Topic")


# --- Learning progress ---

class MaterialProgress(Base):
    __tablename__ = "material_progress"
    __table_args__ = (UniqueConstraint("learner_id", "material_id", name="uq_material_progress"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("learning_materials.id"), nullable=False)
    kind = Column(Enum(MaterialKind), nullable=False)
    percent = Column(Integer, default=0, nullable=False)
    time_spent_sec = Column(Integer, default=0, nullable=False)
    last_pos_sec = Column(Integer, nullable=True)
    meta = Column(JSON, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class TopicProgress(Base):
    __tablename__ = "topic_progress"
    __table_args__ = (UniqueConstraint("learner_id", "topic_id", name="uq_topic_progress"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    percent = Column(Integer, default=0, nullable=False)
    time_spent_sec = Column(Integer, default=0, nullable=False)
    gate_satisfied = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class CourseProgress(Base):
    __tablename__ = "course_progress"
    __table_args__ = (UniqueConstraint("learner_id", "course_id", name="uq_course_progress"),)

    id = Column(Integer, primary_key=True, index=True)
    learner_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    percent = Column(Integer, default=0, nullable=False)
    time_spent_sec = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
