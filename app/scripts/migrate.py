"""Container entrypoint: wait for the database, bring the schema to head, seed.

Run as `python -m app.scripts.migrate` before starting uvicorn.
"""

from __future__ import annotations

import os
import time
import logging
import subprocess
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from app.core.config import settings

logger = logging.getLogger("fault_routing.migrate")

# tables that exist in any pre-alembic install of this service
_CORE_TABLES = {"users", "actions", "approvals"}


def wait_for_db(engine: Engine, timeout_s: int = 60) -> None:
    start = time.time()
    delay = 1.0

    while True:
        try:
            with engine.begin() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError as e:
            if time.time() - start > timeout_s:
                raise
            logger.info("Database not ready (%s); retrying in %.1fs", e.__class__.__name__, delay)
            time.sleep(delay)
            delay = min(delay * 1.5, 5.0)


def _needs_stamp(engine: Engine) -> bool:
    """Schema created outside alembic (e.g. create_all in dev): adopt it instead of recreating."""
    tables = set(inspect(engine).get_table_names())
    return "alembic_version" not in tables and _CORE_TABLES <= tables


def _alembic(*args: str) -> int:
    logger.info("alembic %s", " ".join(args))
    return subprocess.run(["alembic", *args], check=False).returncode


def _seed() -> None:
    from app.db.session import SessionLocal
    from app.scripts.seed_sample import seed_sample

    db = SessionLocal()
    try:
        seed_sample(db)
        db.commit()
    finally:
        db.close()


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    dsn = os.getenv("DATABASE_DSN") or settings.DATABASE_DSN
    engine = create_engine(dsn, pool_pre_ping=True)

    # docker-compose starts the app before the database accepts connections
    wait_for_db(engine, timeout_s=int(os.getenv("DB_WAIT_TIMEOUT", "90")))

    rc = _alembic("stamp", "head") if _needs_stamp(engine) else _alembic("upgrade", "head")
    if rc != 0:
        # never seed on top of a schema that didn't migrate
        logger.error("alembic failed with exit code %s", rc)
        return rc

    if settings.AUTO_SEED_SAMPLE:
        _seed()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
