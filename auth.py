"""
Authentication gate: password hashing, bearer tokens and role checks.

`get_current_user` resolves the bearer token of a request to the stored user
(without its password hash). `require_role` builds dependencies gating a
route on the caller's role.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import find_by_id, get_db, sanitize
from errors import Forbidden, Unauthenticated

logger = structlog.get_logger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(30 * 24 * 60)))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": subject, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def public_user(doc: Dict) -> Dict:
    """User projection without the password hash."""
    user = sanitize(doc)
    user.pop("password_hash", None)
    return user


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> Dict:
    if not token:
        raise Unauthenticated()
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.info("token_rejected", reason=str(exc))
        raise Unauthenticated("Token invalide")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Token invalide")
    user = find_by_id(db, "user", user_id)
    if not user:
        # Signed token for a user that has since been deleted.
        logger.info("token_orphaned", user_id=user_id)
        raise Unauthenticated("Token invalide")
    return public_user(user)


def require_role(*roles: str):
    async def role_dep(current_user: Dict = Depends(get_current_user)) -> Dict:
        if current_user.get("role") not in roles:
            logger.info("role_denied", user_id=current_user["id"], required=roles)
            raise Forbidden()
        return current_user
    return role_dep


admin_required = require_role("admin")


def is_owner_or_admin(user: Dict, owner_id: str) -> bool:
    return user.get("role") == "admin" or user["id"] == owner_id
