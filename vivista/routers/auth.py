from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.responses import PlainTextResponse
from vivista.dependencies import get_credential_store, get_session_manager
from vivista.services.credentials import CredentialStore
from vivista.services.sessions import SessionManager

router = APIRouter(tags=["auth"])


@router.post("/register", response_class=PlainTextResponse)
def register(
    username: str = Form(""),
    password: str = Form(""),
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Create an account and log it in immediately. Returns the session token as plain text."""
    user_id = credentials.register(username, password)
    return sessions.issue(user_id)


@router.post("/login", response_class=PlainTextResponse)
def login(
    username: str = Form(""),
    password: str = Form(""),
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Login with username and password. Returns a new session token as plain text."""
    if not credentials.authenticate(username, password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    user_id = credentials.user_id_for(username)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    return sessions.issue(user_id)
