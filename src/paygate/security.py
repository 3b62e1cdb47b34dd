"""
Password hashing and the local session credential.
"""

from datetime import datetime, timezone
from typing import Optional

import bcrypt
import jwt

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_session_token(user_id: str, secret: str) -> str:
    payload = {"userId": user_id, "iat": int(datetime.now(timezone.utc).timestamp())}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_session_token(token: str, secret: str) -> Optional[dict]:
    """
    Verify a session token; None when invalid.
    """
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
