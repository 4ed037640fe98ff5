from app.database import create_tables, get_engine
from app.logging_config import configure_logging
from app.utils.logger import get_logger

logger = get_logger(__name__)

def init_db():
    """Create missing tables. Production schemas are managed by Alembic."""
    try:
        create_tables()
        logger.info(f"Database initialization complete ({get_engine().url.render_as_string(hide_password=True)})")
    except Exception as e:
        logger.error(f"Error during database initialization: {e}")
        raise

if __name__ == "__main__":
    configure_logging()
    init_db()
