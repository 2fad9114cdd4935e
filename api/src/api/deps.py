"""FastAPI dependencies for storage and ingestion."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.config import settings
from ingest_service.sync import PoemLocks, Synchronizer
from poesie_core.db.store import PoemStore, SqlPoemStore

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Shared by every request so writes to one poem are serialized process-wide.
poem_locks = PoemLocks()


def get_store() -> PoemStore:
    """Return the persistence port backed by the API database."""
    return SqlPoemStore(SessionLocal)


Store = Annotated[PoemStore, Depends(get_store)]


def get_synchronizer(store: Store) -> Synchronizer:
    """Return a synchronizer writing through the request's store."""
    return Synchronizer(store, locks=poem_locks)


Sync = Annotated[Synchronizer, Depends(get_synchronizer)]
