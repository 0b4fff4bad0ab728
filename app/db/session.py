import os
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.errors import ConflictError

POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', '10'))
MAX_OVERFLOW = int(os.environ.get('DB_MAX_OVERFLOW', '20'))


def _engine_kwargs(dsn: str) -> dict:
    if dsn.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # in-memory databases live as long as their single connection
        if dsn in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": 30,
    }


engine = create_engine(settings.DATABASE_DSN, **_engine_kwargs(settings.DATABASE_DSN))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session) -> None:
    """Commit, turning a lost optimistic-concurrency race into ConflictError."""
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError("Record was modified concurrently; reload and retry") from exc
