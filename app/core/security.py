"""
app/core/security.py

Purpose: Authentication helpers

- Password hashing (bcrypt)
- Cookie sessions (Starlette SessionMiddleware, signed with SECRET_KEY)
- FastAPI dependencies resolving the signed-in user
"""

from typing import Any, Dict, Mapping, Optional

import bcrypt
from fastapi import Request

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from utils.constants import MSG_UNAUTHORIZED

SESSION_USER_KEY = "user"

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(
        password.encode("utf-8")[:_BCRYPT_MAX_BYTES],
        bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS),
    )
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:_BCRYPT_MAX_BYTES],
            hashed.encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash
        return False


def session_user_payload(user: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Fields kept in the session cookie.
    """
    return {
        "id": user["_id"],
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "is_business_account": bool(user.get("is_business_account")),
    }


def login_session(request: Request, user: Mapping[str, Any]):
    request.session.clear()
    request.session[SESSION_USER_KEY] = session_user_payload(user)


def logout_session(request: Request):
    request.session.clear()


def get_session_user(request: Request) -> Optional[Dict[str, Any]]:
    """
    Dependency: the signed-in user's session payload, or None.
    """
    user = request.session.get(SESSION_USER_KEY)
    if not user or not user.get("id"):
        return None
    return user


def get_current_user_id(request: Request) -> str:
    """
    Dependency: the signed-in user's id.

    Raises:
        AuthenticationError: No session (401)
    """
    user = get_session_user(request)
    if user is None:
        raise AuthenticationError(MSG_UNAUTHORIZED)
    return user["id"]
