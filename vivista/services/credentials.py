"""
User registration and password checks.
Usernames are stored trimmed and lower-cased, so uniqueness is case-insensitive.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vivista.auth import dummy_verify, hash_password, verify_password
from vivista.models.user import User
from vivista.services.errors import Conflict

logger = logging.getLogger(__name__)


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


class CredentialStore:
    def __init__(self, db: Session):
        self.db = db

    def register(self, username: str, password: str) -> int:
        """Create a user and return its id. Empty or taken usernames raise Conflict."""
        username = normalize_username(username)
        if not username:
            raise Conflict("Username is empty")
        if self.user_id_for(username) is not None:
            raise Conflict()

        user = User(username=username, password_hash=hash_password(password))
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same name
            self.db.rollback()
            raise Conflict()
        self.db.refresh(user)
        logger.info("Registered user %s (id=%s)", username, user.id)
        return user.id

    def authenticate(self, username: str, password: str) -> bool:
        """
        True only for a matching stored hash. Unknown users still cost one
        bcrypt verification so response time does not reveal which names exist.
        """
        stored = (
            self.db.query(User.password_hash)
            .filter(User.username == normalize_username(username))
            .scalar()
        )
        if stored is None:
            dummy_verify()
            return False
        return verify_password(password or "", stored)

    def user_id_for(self, username: str) -> int | None:
        return (
            self.db.query(User.id)
            .filter(User.username == normalize_username(username))
            .scalar()
        )

    def username_for(self, user_id: int) -> str | None:
        return self.db.query(User.username).filter(User.id == user_id).scalar()
