# assessment_engine/init_db.py
import logging

from src.assessment_engine.core.logging import setup_logging
from src.assessment_engine.db.session import engine
from src.assessment_engine.db.models import Base


def init_database():
    logging.info("Creating all database tables...")
    Base.metadata.create_all(bind=engine)
    logging.info("Database tables created.")


if __name__ == "__main__":
    setup_logging()
    init_database()
