# src/assessment_engine/core/policy.py
"""
Capability predicates shared by every engine operation.

The caller identity arrives from an external auth layer and is trusted as-is;
this module only decides what that identity may do.
"""
import datetime
from typing import Optional

from pydantic import BaseModel

ADMIN = "ADMIN"
STUDENT = "STUDENT"


class Caller(BaseModel):
    id: int
    role: str = STUDENT


def is_admin(caller: Caller) -> bool:
    return caller.role == ADMIN


def can_read_exam(caller: Caller, exam) -> bool:
    # created_by_id None marks an admin-authored, public exam
    return is_admin(caller) or exam.created_by_id is None or exam.created_by_id == caller.id


def can_manage_exam(caller: Caller, exam) -> bool:
    return is_admin(caller) or (exam.created_by_id is not None and exam.created_by_id == caller.id)


def can_author_content(caller: Caller) -> bool:
    return is_admin(caller)


def can_read_attempt(caller: Caller, attempt) -> bool:
    return attempt.learner_id == caller.id


def can_read_learner(caller: Caller, learner_id: int) -> bool:
    return is_admin(caller) or caller.id == learner_id


def bypasses_enrollment(caller: Caller) -> bool:
    return is_admin(caller)


def requires_exam_window(caller: Caller) -> bool:
    """Self-service exam creation must carry an explicit start/end window."""
    return not is_admin(caller)


def window_contains(start_at: Optional[datetime.datetime], end_at: Optional[datetime.datetime],
                    now: datetime.datetime) -> bool:
    # Missing bounds are unbounded on that side
    if start_at is not None and now < start_at:
        return False
    if end_at is not None and now > end_at:
        return False
    return True


def is_open_or_pending(exam, now: datetime.datetime) -> bool:
    """No window, or a window that has not closed yet (including not started)."""
    return exam.end_at is None or now < exam.end_at
