"""
database/session.py

Initializes the SQLAlchemy asynchronous engine and session factory
backing the document store.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from doit.core.config import settings
from doit.database.models import Base

# -----------------------------------------------------
# SQLAlchemy Async Engine Initialization
# -----------------------------------------------------
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,  # Set to True for SQL debugging output
)

# -----------------------------------------------------
# Session Factory for Async Database Access
# -----------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,  # Prevents auto-expiration of ORM objects after commit
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Creates the document table if it does not exist."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
