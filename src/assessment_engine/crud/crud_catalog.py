# src/assessment_engine/crud/crud_catalog.py
"""
Read-side access to the course/content catalog.

The catalog is owned by another service; the engine only looks things up,
checks enrollment, and stamps time estimates on materials when they are
authored.
"""
import logging
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from src.assessment_engine.core.estimates import compute_estimated_seconds
from src.assessment_engine.core.exceptions import NotFound, validate_payload
from src.assessment_engine.db.models import (
    Course, Enrollment, EnrollmentStatus, LearningMaterial, Question, Topic
)
from src.assessment_engine.schemas.progress import MaterialCreate, MaterialUpdate

logger = logging.getLogger(__name__)


class PathIds(NamedTuple):
    course_id: Optional[int]
    volume_id: Optional[int]
    module_id: Optional[int]

    @property
    def complete(self) -> bool:
        return None not in self


def get_course(db: Session, course_id: int) -> Optional[Course]:
    return db.get(Course, course_id)


def get_topic(db: Session, topic_id: int) -> Optional[Topic]:
    return db.get(Topic, topic_id)


def get_question(db: Session, question_id: int) -> Optional[Question]:
    return db.get(Question, question_id)


def get_material(db: Session, material_id: int) -> Optional[LearningMaterial]:
    return db.get(LearningMaterial, material_id)


def is_enrolled(db: Session, learner_id: int, course_id: int) -> bool:
    return db.query(Enrollment).filter_by(learner_id=learner_id, course_id=course_id).first() is not None


def mark_enrollment_completed(db: Session, learner_id: int, course_id: int) -> int:
    """Idempotent; does not commit. Returns the number of rows touched."""
    return db.query(Enrollment)\
             .filter(Enrollment.learner_id == learner_id, Enrollment.course_id == course_id)\
             .update({Enrollment.status: EnrollmentStatus.COMPLETED}, synchronize_session=False)


def derive_path(db: Session, topic_id: Optional[int]) -> PathIds:
    """
    Walk topic -> module -> volume -> course. A missing link leaves that level
    and everything above it as None.
    """
    topic = get_topic(db, topic_id) if topic_id is not None else None
    module = topic.module if topic else None
    volume = module.volume if module else None
    return PathIds(
        course_id=volume.course_id if volume else None,
        volume_id=volume.id if volume else None,
        module_id=module.id if module else None,
    )


def create_material(db: Session, topic_id: int, payload) -> LearningMaterial:
    payload = validate_payload(MaterialCreate, payload)
    if get_topic(db, topic_id) is None:
        raise NotFound("Topic not found")
    material = LearningMaterial(
        topic_id=topic_id,
        kind=payload.kind,
        title=payload.title,
        url=payload.url,
        content_html=payload.content_html,
        duration_sec=payload.duration_sec,
        order=payload.order,
        estimated_seconds=compute_estimated_seconds(
            payload.kind.value,
            estimated_seconds=payload.estimated_seconds,
            estimated_minutes=payload.estimated_minutes,
            duration_sec=payload.duration_sec,
            content_html=payload.content_html,
        ),
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    logger.info("Material %s created for topic %s (estimate %ss)", material.id, topic_id, material.estimated_seconds)
    return material


_ESTIMATE_FIELDS = {"kind", "duration_sec", "content_html", "estimated_seconds", "estimated_minutes"}


def update_material(db: Session, material_id: int, payload) -> LearningMaterial:
    payload = validate_payload(MaterialUpdate, payload)
    material = get_material(db, material_id)
    if material is None:
        raise NotFound("Material not found")
    changes = payload.model_dump(exclude_unset=True)
    for field in ("kind", "title", "url", "content_html", "duration_sec", "order"):
        if field in changes:
            setattr(material, field, changes[field])
    # Only recompute when something the estimate depends on was sent
    if _ESTIMATE_FIELDS & changes.keys():
        material.estimated_seconds = compute_estimated_seconds(
            material.kind.value,
            estimated_seconds=changes.get("estimated_seconds"),
            estimated_minutes=changes.get("estimated_minutes"),
            duration_sec=material.duration_sec,
            content_html=material.content_html,
        )
    db.commit()
    db.refresh(material)
    return material
