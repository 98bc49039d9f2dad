"""Server-side session. The token is the credential; expiry slides on every successful use."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from vivista.database import Base


class UserSession(Base):
    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expiry = Column(DateTime, nullable=False, index=True)
