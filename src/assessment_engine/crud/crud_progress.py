# src/assessment_engine/crud/crud_progress.py
"""
Learning-material progress: heartbeat time accounting with anti-inflation
caps, and on-demand weighted roll-ups to topic and course.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from src.assessment_engine.core.config import settings
from src.assessment_engine.core.exceptions import NotFound, validate_payload
from src.assessment_engine.core.utils import round_half_up, utcnow
from src.assessment_engine.crud.crud_catalog import get_course, get_material
from src.assessment_engine.crud.crud_common import get_or_create
from src.assessment_engine.db.models import (
    CourseProgress, LearningMaterial, MaterialKind, MaterialProgress, Topic, TopicProgress
)
from src.assessment_engine.schemas.progress import HeartbeatPayload

logger = logging.getLogger(__name__)


def derive_percent(payload: HeartbeatPayload) -> Optional[int]:
    """
    explicit percent > video position/duration > scroll depth > nothing.
    """
    if payload.percent is not None:
        return round_half_up(payload.percent)
    if payload.kind == MaterialKind.VIDEO and payload.position_sec is not None and payload.duration_sec:
        return min(100, round_half_up(payload.position_sec / payload.duration_sec * 100))
    if payload.scroll_depth is not None:
        return round_half_up(payload.scroll_depth * 100)
    return None


def overall_time_cap(estimated_seconds: Optional[int], multiplier: float = None) -> Optional[int]:
    est = max(0, estimated_seconds or 0)
    if est == 0:
        return None
    multiplier = settings.LEARNING_TIME_CAP_MULTIPLIER if multiplier is None else multiplier
    return round_half_up(est * multiplier)


def heartbeat(db: Session, learner_id: int, material_id: int, payload, now=None) -> Dict:
    """
    Accrue time and completion for one (learner, material). Percent never
    goes down; time is capped per call and overall against the estimate.
    """
    payload = validate_payload(HeartbeatPayload, payload)
    material = get_material(db, material_id)
    if material is None:
        raise NotFound("Material not found")

    progress, _ = get_or_create(db, MaterialProgress, learner_id=learner_id, material_id=material_id,
                                defaults={"kind": payload.kind, "percent": 0, "time_spent_sec": 0})

    derived = derive_percent(payload)
    if derived is not None:
        progress.percent = max(progress.percent or 0, derived)

    capped_delta = max(0, min(payload.delta_sec, settings.HEARTBEAT_MAX_DELTA_SEC))
    next_time = (progress.time_spent_sec or 0) + capped_delta
    cap = overall_time_cap(material.estimated_seconds)
    if cap is not None:
        next_time = min(next_time, cap)
    progress.time_spent_sec = next_time

    if payload.position_sec is not None:
        progress.last_pos_sec = payload.position_sec
    if payload.meta is not None:
        progress.meta = payload.meta
    if progress.percent >= 100 and progress.completed_at is None:
        progress.completed_at = now or utcnow()

    db.commit()
    db.refresh(progress)

    total_estimated = material.estimated_seconds or payload.duration_sec
    remaining = max(0, total_estimated - progress.time_spent_sec) if total_estimated else None
    return {
        "progress": progress,
        "total_estimated_seconds": total_estimated,
        "remaining_seconds": remaining,
    }


def complete_material(db: Session, learner_id: int, material_id: int, now=None) -> MaterialProgress:
    material = get_material(db, material_id)
    if material is None:
        raise NotFound("Material not found")
    progress, _ = get_or_create(db, MaterialProgress, learner_id=learner_id, material_id=material_id,
                                defaults={"kind": material.kind, "percent": 0, "time_spent_sec": 0})
    progress.percent = 100
    progress.completed_at = progress.completed_at or now or utcnow()
    db.commit()
    db.refresh(progress)
    return progress


def _material_rows(db: Session, learner_id: int, topic_id: int):
    materials = db.query(LearningMaterial)\
                  .filter(LearningMaterial.topic_id == topic_id)\
                  .order_by(LearningMaterial.order.asc(), LearningMaterial.id.asc())\
                  .all()
    ids = [m.id for m in materials]
    rows = db.query(MaterialProgress)\
             .filter(MaterialProgress.learner_id == learner_id, MaterialProgress.material_id.in_(ids))\
             .all() if ids else []
    return materials, {r.material_id: r for r in rows}


def compute_topic_rollup(materials, progress_by_material) -> Dict:
    """
    Weighted by each material's estimate; falls back to a plain mean when
    every weight is zero, in which case remaining time is reported as 0.
    """
    if not materials:
        return {"percent": 0, "time_spent_sec": 0, "gate_satisfied": False,
                "estimated_seconds": None, "remaining_seconds": 0}

    weights = [max(0, m.estimated_seconds or 0) for m in materials]
    total_weight = sum(weights)
    time_spent = 0
    remaining = 0
    weighted = 0.0
    plain = 0.0
    for material, weight in zip(materials, weights):
        row = progress_by_material.get(material.id)
        pct = row.percent if row else 0
        time_spent += row.time_spent_sec if row else 0
        weighted += pct * weight
        plain += pct
        remaining += max(0, weight - round_half_up(weight * pct / 100))

    if total_weight > 0:
        percent = round_half_up(weighted / total_weight)
    else:
        percent = round_half_up(plain / len(materials))
        remaining = 0
    return {
        "percent": percent,
        "time_spent_sec": time_spent,
        "gate_satisfied": percent >= 100,
        "estimated_seconds": total_weight or None,
        "remaining_seconds": remaining,
    }


def rollup_topic(db: Session, learner_id: int, topic_id: int, now=None) -> Dict:
    """Recompute the topic from its materials and cache it in TopicProgress."""
    materials, by_material = _material_rows(db, learner_id, topic_id)
    summary = compute_topic_rollup(materials, by_material)
    if not materials:
        return summary

    cached, _ = get_or_create(db, TopicProgress, learner_id=learner_id, topic_id=topic_id)
    cached.percent = summary["percent"]
    cached.time_spent_sec = summary["time_spent_sec"]
    cached.gate_satisfied = summary["gate_satisfied"]
    if summary["gate_satisfied"]:
        cached.completed_at = cached.completed_at or now or utcnow()
    else:
        cached.completed_at = None
    db.commit()
    return summary


def rollup_course(db: Session, learner_id: int, course_id: int, now=None) -> Dict:
    """
    Plain mean of cached topic percents over every topic sharing the course's
    level. Topics are matched by level, not by course linkage.
    """
    course = get_course(db, course_id)
    if course is None:
        raise NotFound("Course not found")
    topics = db.query(Topic).filter(Topic.level == course.level).all()
    if not topics:
        return {"percent": 0, "time_spent_sec": 0, "estimated_seconds": 0, "remaining_seconds": 0}

    topic_ids = [t.id for t in topics]
    cached = db.query(TopicProgress)\
               .filter(TopicProgress.learner_id == learner_id, TopicProgress.topic_id.in_(topic_ids))\
               .all()
    by_topic = {tp.topic_id: tp for tp in cached}
    percent = round_half_up(sum(tp.percent for tp in cached) / max(1, len(topics)))
    time_spent = sum(tp.time_spent_sec or 0 for tp in cached)

    # Estimates come straight from the materials, independent of rollup_topic
    est_by_topic = {tid: 0 for tid in topic_ids}
    materials = db.query(LearningMaterial.topic_id, LearningMaterial.estimated_seconds)\
                  .filter(LearningMaterial.topic_id.in_(topic_ids))\
                  .all()
    for topic_id, est in materials:
        est_by_topic[topic_id] += max(0, est or 0)
    estimated = sum(est_by_topic.values())
    # Only topics the learner has rolled up contribute remaining time
    remaining = 0
    for topic_id, tp in by_topic.items():
        est = est_by_topic.get(topic_id, 0)
        remaining += max(0, est - round_half_up(est * tp.percent / 100))

    row, _ = get_or_create(db, CourseProgress, learner_id=learner_id, course_id=course_id)
    row.percent = percent
    row.time_spent_sec = time_spent
    if percent >= 100:
        row.completed_at = row.completed_at or now or utcnow()
    else:
        row.completed_at = None
    db.commit()
    logger.info("Course %s progress for %s: %s%%", course_id, learner_id, percent)
    return {
        "percent": percent,
        "time_spent_sec": time_spent,
        "estimated_seconds": estimated,
        "remaining_seconds": remaining,
    }
