"""
Session tokens with a sliding expiry window.

Active -> (validated before expiry) -> Active with expiry = now + window
Active -> (validated at/after expiry) -> row deleted, token invalid

Every transition is a single conditional statement so that a purge is terminal:
a concurrent renewal only matches rows that are still unexpired.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vivista.models.session import UserSession
from vivista.utils.time import utcnow

logger = logging.getLogger(__name__)

SESSION_WINDOW_MINUTES = 60
TOKEN_BYTES = 32  # 256 bits, url-safe base64 without truncation
MAX_ISSUE_ATTEMPTS = 5


def new_session_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class SessionManager:
    def __init__(
        self,
        db: Session,
        window_minutes: int = SESSION_WINDOW_MINUTES,
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = new_session_token,
    ):
        self.db = db
        self.window = timedelta(minutes=window_minutes)
        self.clock = clock
        self.token_factory = token_factory

    def issue(self, user_id: int) -> str:
        """Persist a fresh token for user_id. Collisions on the unique token are retried."""
        for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
            token = self.token_factory()
            try:
                self.db.execute(
                    insert(UserSession.__table__).values(
                        token=token, user_id=user_id, expiry=self.clock() + self.window
                    )
                )
                self.db.commit()
                return token
            except IntegrityError:
                self.db.rollback()
                logger.warning("Session token collision for user %s (attempt %d)", user_id, attempt)
        raise RuntimeError("Could not issue a unique session token")

    def validate(self, token: str | None) -> int | None:
        """Return the user id for a live token and renew it; None for unknown or expired tokens."""
        if not token:
            return None
        session = self.db.query(UserSession).filter(UserSession.token == token).first()
        if session is None:
            return None

        user_id = session.user_id
        now = self.clock()
        if now >= session.expiry:
            self.db.execute(
                delete(UserSession).where(UserSession.token == token, UserSession.expiry <= now)
            )
            self.db.commit()
            logger.debug("Session for user %s expired; purged", user_id)
            return None

        result = self.db.execute(
            update(UserSession)
            .where(UserSession.token == token, UserSession.expiry > now)
            .values(expiry=now + self.window)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            return None
        return user_id

    def purge_expired(self) -> int:
        """Delete every expired session. Returns the number of rows removed."""
        result = self.db.execute(delete(UserSession).where(UserSession.expiry <= self.clock()))
        self.db.commit()
        return result.rowcount or 0
