"""
medcircle.database.engine — Engine, sessions & the async bridge
================================================================

**Why this file exists:**
Request handlers for verification are ``async``, but the ledger and
moderation services talk to PostgreSQL through synchronous SQLAlchemy
sessions.  :func:`run_db` moves such a call onto a worker thread so a
slow query never holds up the event loop::

    verified = await run_db(record_outcome, engine, user_id, request, result)

Usage::

    from medcircle.database.engine import create_db_engine, get_session

    engine = create_db_engine()          # DATABASE_URL from the environment
    with get_session(engine) as session:
        session.add(Profile(id="u-1"))
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from medcircle.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Return a pooled :class:`Engine` for ``DATABASE_URL``.

    The pool keeps five connections open, allows ten more under burst
    load, gives up after 10 s waiting for a free connection and recycles
    connections hourly.  ``pool_pre_ping`` drops connections the server
    has closed.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is missing or empty.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at your PostgreSQL database."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Engine ready for %s/%s", engine.url.host, engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """``create_all`` for every MedCircle table.

    Idempotent.  Production schemas are owned by Alembic
    (``alembic upgrade head``); this keeps local and test databases usable
    without a migration run.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema present (%d tables).", len(Base.metadata.tables))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Transactional scope: commit when the block exits cleanly, roll back
    and re-raise otherwise.  Loaded objects stay usable after commit.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking, session-opening *func* on a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
