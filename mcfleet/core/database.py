# mcfleet/core/database.py
from databases import Database
from sqlalchemy import create_engine

from mcfleet.core.config import Settings
from mcfleet.models.db import Base

settings = Settings()
database = Database(settings.DATABASE_URL)


def create_tables(url: str = settings.SYNC_DATABASE_URL) -> None:
    """Create missing tables (synchronous, run once at startup)."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args)
    Base.metadata.create_all(engine)
    engine.dispose()
