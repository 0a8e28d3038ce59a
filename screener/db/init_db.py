import logging
from screener.db.session import engine
from screener.db.base import Base
import screener.db.models  # noqa: F401  (registers models on Base.metadata)

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create missing tables (used when migrations are not run)."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")
