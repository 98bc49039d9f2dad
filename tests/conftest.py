from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from vivista.config import Settings
from vivista.database import Base, build_engine, build_session_factory
from vivista.main import create_app
from vivista.models.user import User
from vivista.services.sessions import SessionManager
from vivista.services.storage import AssetStorage
from vivista.services.video_assets import VideoAssetManager


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        db_host="",
        data_dir=str(tmp_path / "data"),
        require_tls=False,
        session_sweep_interval_minutes=0,
    )


@pytest.fixture
def session_factory(settings):
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(settings):
    return AssetStorage(settings.data_path)


@pytest.fixture
def make_user(db):
    """Insert a user row directly (no bcrypt cost) and return its id."""

    def _make(username: str) -> int:
        user = User(username=username, password_hash="not-a-real-hash")
        db.add(user)
        db.commit()
        return user.id

    return _make


@pytest.fixture
def sessions(db, clock):
    return SessionManager(db, clock=clock)


@pytest.fixture
def manager(db, sessions, storage, clock):
    return VideoAssetManager(db, sessions, storage, clock=clock)


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c
