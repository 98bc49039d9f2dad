"""Per-request construction of the service components from the request-scoped DB session."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from vivista.database import get_db
from vivista.services.credentials import CredentialStore
from vivista.services.query import QueryEngine
from vivista.services.sessions import SessionManager
from vivista.services.storage import AssetStorage
from vivista.services.video_assets import VideoAssetManager


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def get_session_manager(request: Request, db: Session = Depends(get_db)) -> SessionManager:
    settings = request.app.state.settings
    return SessionManager(db, window_minutes=settings.session_window_minutes)


def get_asset_storage(request: Request) -> AssetStorage:
    return request.app.state.storage


def get_video_asset_manager(
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
    storage: AssetStorage = Depends(get_asset_storage),
) -> VideoAssetManager:
    return VideoAssetManager(db, sessions, storage)


def get_query_engine(
    db: Session = Depends(get_db),
    credentials: CredentialStore = Depends(get_credential_store),
) -> QueryEngine:
    return QueryEngine(db, credentials)
