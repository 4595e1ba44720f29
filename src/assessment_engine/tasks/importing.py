# src/assessment_engine/tasks/importing.py
import logging

from .celery_app import celery_app
from src.assessment_engine.db.session import SessionLocal
from src.assessment_engine.crud.crud_question import import_questions_csv

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def import_questions_task(self, csv_text: str):
    """
    Bulk question import in the background. Reports PROGRESS per row and
    returns the same {created, errors} summary as the synchronous import.
    """
    reports_state = not (self.request.called_directly or self.request.is_eager)

    def _progress(current: int, total: int):
        if reports_state:
            self.update_state(state='PROGRESS', meta={'current': current, 'total': total,
                                                      'status': f'Imported row {current} of {total}'})

    logger.info("Starting question import task (%d bytes).", len(csv_text or ""))
    db = SessionLocal()
    try:
        result = import_questions_csv(db, csv_text, on_progress=_progress)
    finally:
        db.close()

    logger.info("Import task done: %d created, %d failed.", result["created"], len(result["errors"]))
    return {**result, 'status': 'Task completed!'}
