"""
Mimi's Kitchen API - Security Utilities
========================================
JWT bearer tokens and password hashing.
"""

import logging
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from common.helpers import now_utc

logger = logging.getLogger("mimis.security")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ==========================================
# Passwords
# ==========================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


# ==========================================
# JWT Tokens
# ==========================================

def create_access_token(user_id: int, role: str) -> str:
    """Create an access token carrying the user id and role."""
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": now_utc() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload
