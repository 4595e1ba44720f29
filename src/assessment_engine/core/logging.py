# src/assessment_engine/core/logging.py
import logging
import sys
from logging.handlers import RotatingFileHandler
import os

from src.assessment_engine.core.config import settings

LOG_FILE_NAME = "engine.log"


def setup_logging(log_dir: str = None):
    """Configure the root logger: rotating file plus stdout."""
    log_dir = log_dir or settings.LOG_DIR
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)

    # Avoid stacking handlers when called twice (celery worker + app)
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE_NAME), maxBytes=5*1024*1024, backupCount=2, encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.info("Logging initialised (dir=%s, level=%s).", log_dir, settings.LOG_LEVEL)
