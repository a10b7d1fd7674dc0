from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return _pwd_context.verify(password, hashed)


def needs_rehash(hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return _pwd_context.needs_update(hashed)


def create_access_token(user_id: int, *, expires_in: Optional[timedelta] = None, secret: Optional[str] = None) -> str:
    expires = datetime.now(timezone.utc) + (expires_in or timedelta(hours=settings.jwt_expire_hours))
    payload = {"user": {"id": int(user_id)}, "exp": expires}
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, *, secret: Optional[str] = None) -> Optional[dict]:
    """
    Returns the token payload, or None when the signature, shape or expiry is invalid.
    """
    try:
        payload = jwt.decode(token, secret or settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    user = payload.get("user")
    if not isinstance(user, dict) or user.get("id") is None:
        return None
    return payload
