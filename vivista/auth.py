from fastapi import Depends, Form
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext

security = HTTPBearer(auto_error=False)

BCRYPT_WORK_FACTOR = 12

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_WORK_FACTOR,
)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)

def dummy_verify() -> None:
    """Burn one verification of the same cost; used when the user does not exist."""
    pwd_context.dummy_verify()


def caller_token(
    token: str | None = Form(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """Session token from the `token` form field, or from an Authorization: Bearer header."""
    if token:
        return token
    if credentials:
        return credentials.credentials
    return ""
