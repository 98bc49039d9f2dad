"""Background task: periodically delete expired sessions. Not needed for correctness, only to reclaim rows."""
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from vivista.services.sessions import SessionManager

logger = logging.getLogger(__name__)


def purge_once(session_factory: sessionmaker, window_minutes: int) -> int:
    db = session_factory()
    try:
        return SessionManager(db, window_minutes=window_minutes).purge_expired()
    finally:
        db.close()


async def session_sweeper(session_factory: sessionmaker, interval_minutes: int, window_minutes: int):
    interval = interval_minutes * 60
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(purge_once, session_factory, window_minutes)
            if removed:
                logger.info("Session sweep removed %d expired sessions", removed)
        except SQLAlchemyError:
            logger.exception("Session sweep failed")
