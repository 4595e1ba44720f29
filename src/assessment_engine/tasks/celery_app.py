# src/assessment_engine/tasks/celery_app.py
from celery import Celery
from src.assessment_engine.core.config import settings
from src.assessment_engine.core.logging import setup_logging

setup_logging()
# Redis as broker and result backend
celery_app = Celery(
    "tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["src.assessment_engine.tasks.importing"]
)

celery_app.conf.update(
    task_track_started=True,
)
