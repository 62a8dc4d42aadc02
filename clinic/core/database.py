from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator
import time
import redis
from .config import settings


def _engine_options(url: str) -> dict:
    """SQLite gets a thread-shareable connection, server databases a pool."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.get_database_url,
    **_engine_options(settings.get_database_url)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class InMemoryRedis:
    """Process-local stand-in for the few Redis calls the app makes.

    Keys written with `setex` expire like real ones, so rate-limit windows
    behave the same in tests. Published messages are kept in `published`.
    """

    def __init__(self):
        self.data = {}
        self.expires_at = {}
        self.published = []

    def _alive(self, key) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def setex(self, key, seconds, value):
        self.data[key] = str(value)
        self.expires_at[key] = time.monotonic() + seconds
        return True

    def get(self, key):
        return self.data.get(key) if self._alive(key) else None

    def delete(self, key):
        self.expires_at.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    def incr(self, key):
        current = int(self.data[key]) if self._alive(key) else 0
        self.data[key] = str(current + 1)
        return current + 1

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 0


def build_redis_client():
    if settings.TESTING:
        return InMemoryRedis()
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


redis_client = build_redis_client()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis():
    """Shared Redis client (rate limiting and event broadcast)."""
    return redis_client


def init_db():
    """Create any missing tables."""
    from .. import models  # noqa: F401  registers every table on Base.metadata

    Base.metadata.create_all(bind=engine)
