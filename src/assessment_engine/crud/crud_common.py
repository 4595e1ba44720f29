# src/assessment_engine/crud/crud_common.py
from sqlalchemy.orm import Session


def get_or_create(db: Session, model, defaults: dict = None, **keys):
    """
    Fetch the row for a unique key or stage a new one. The unique constraint
    on `keys` is what guarantees a single row under concurrent writers.
    Returns (instance, created).
    """
    instance = db.query(model).filter_by(**keys).first()
    if instance is not None:
        return instance, False
    instance = model(**keys, **(defaults or {}))
    db.add(instance)
    # Session runs with autoflush off; flush so later lookups in this unit see the row
    db.flush()
    return instance, True
