"""Database sessions for Celery tasks.

Each call builds a fresh engine bound to the current event loop, since
Celery tasks run their coroutine in a new loop and asyncpg connections
cannot cross loops.
"""

from contextlib import asynccontextmanager

from db.database import create_db_engine, create_session_factory


@asynccontextmanager
async def worker_session():
    """Yield a session; commits on success, rolls back on error."""
    engine = create_db_engine()
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()
