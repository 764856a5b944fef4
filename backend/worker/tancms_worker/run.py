"""Scheduled-publishing worker.

Every WORKER_INTERVAL_SECONDS it promotes SCHEDULED entries whose
scheduled_at has passed to PUBLISHED.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.engine import Engine

from tancms import repo
from tancms.config import get_settings, require_database_url
from tancms.db import create_db_engine
from tancms.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def run_once(engine: Engine, now: Optional[datetime] = None) -> List[str]:
    published = repo.publish_due_entries(engine, now)
    logger.info("worker.tick", published=len(published))
    return published


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    engine = create_db_engine(require_database_url(settings))

    logger.info("worker.started", interval_seconds=settings.worker_interval_seconds)
    try:
        while True:
            try:
                run_once(engine)
            except Exception:
                # One bad tick must not stop the loop; the next one retries.
                logger.exception("worker.tick_failed")
            time.sleep(settings.worker_interval_seconds)
    except KeyboardInterrupt:
        logger.info("worker.stopped")
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
