import logging

from sqlmodel import Session

from core.config import get_settings
from core.database import create_db_and_tables, get_engine
from core.logging_config import setup_logging

# Initialize settings and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


def main():
    """Main function for direct script execution"""
    engine = get_engine()
    create_db_and_tables(engine)
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} database ready ({settings.DB_DRIVER})")

    if settings.SEED_DEMO_DATA:
        from seed_data import create_test_data
        with Session(engine) as session:
            create_test_data(session)


if __name__ == "__main__":
    main()
