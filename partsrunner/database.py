import logging
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base

from partsrunner.config import get_settings
from partsrunner.errors import UpstreamError

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: str):
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


@lru_cache
def get_engine():
    return create_db_engine(get_settings().database_url)


@lru_cache
def get_sessionmaker():
    return sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)


def get_db():
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def datastore_call(db, action: str):
    """Roll back and surface datastore failures as a 500 ``UpstreamError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Datastore error while trying to %s: %s", action, exc)
        raise UpstreamError(f"Failed to {action}", details=str(exc))
