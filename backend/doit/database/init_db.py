"""
init_db.py

Creates the document table in the configured database.
Run directly (`python -m doit.database.init_db`) before the first start,
or rely on the application startup hook.
"""

import asyncio
import logging

from doit.database.session import init_models

logger = logging.getLogger(__name__)


def init_db() -> None:
    """
    Creates all database tables based on SQLAlchemy models.
    """
    asyncio.run(init_models())
    logger.info("[DB] Document table ready")


if __name__ == "__main__":
    init_db()
