import logging
from sqlalchemy import text
from tenacity import retry, stop_after_attempt, wait_fixed
from database.database import engine as default_engine
from database.models import Base

logger = logging.getLogger(__name__)

# Partial index for the worker sweep; create_all cannot express the WHERE clause
ACTIVE_STATUS_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_cv_extractions_active_status
    ON cv_extractions (status, updated_at)
    WHERE deleted_at IS NULL AND status IN ('pending', 'processing', 'extracted', 'importing')
"""


@retry(stop=stop_after_attempt(5), wait=wait_fixed(2))
def init_db(engine=None):
    engine = engine or default_engine
    logger.info("Initializing database...")
    try:
        Base.metadata.create_all(bind=engine)
        if engine.dialect.name == "postgresql":
            with engine.connect() as connection:
                connection.execute(text(ACTIVE_STATUS_INDEX))
                connection.commit()
        logger.info("Tables created or verified.")

    except Exception as e:
        logger.error(f"Error initializing DB: {e}")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
