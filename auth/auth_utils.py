import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY
from database import get_users_collection
from errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# auto_error=False so a missing token reaches get_current_user and gets our 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

REVIEWER_ROLES = ("superadmin", "admin")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    users_collection=Depends(get_users_collection),
):
    if not token:
        raise AuthenticationError()

    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    username = payload.get("sub")
    if not username:
        raise AuthenticationError("Invalid or expired token")

    user = users_collection.find_one({"username": username}, {"password": 0})
    if not user:
        raise AuthenticationError("User no longer exists")

    return user


def require_roles(*roles: str):
    """Dependency factory: current user must hold one of ``roles``."""

    def checker(current_user=Depends(get_current_user)):
        if current_user.get("role") not in roles:
            logger.warning(
                f"User {current_user.get('username')} with role {current_user.get('role')} denied"
            )
            raise AuthorizationError()
        return current_user

    return checker
