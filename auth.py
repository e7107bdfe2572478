"""
Admin authentication and the session gate for admin endpoints.

Passwords are stored as passlib hashes. A successful login issues an opaque
bearer token kept in an in-memory session registry until explicit logout.
"""

import logging
import secrets
import threading
from typing import Dict, Optional, Tuple

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from schemas import Admin

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)

INVALID_CREDENTIALS = "Invalid credentials or account inactive"


class AuthError(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # malformed or unknown hash format
        return False


def login(gateway, username: str, password: str) -> Admin:
    """Check credentials against the admins table. Raises AuthError."""
    if not username or not password:
        raise AuthError("Please enter both username and password")
    rows = gateway.select("admins", {"username": username}, limit=1)
    if not rows:
        raise AuthError(INVALID_CREDENTIALS)
    row = rows[0]
    if not row.get("is_active", False) or not verify_password(password, row.get("password_hash")):
        raise AuthError(INVALID_CREDENTIALS)
    return Admin.model_validate(row)


class AdminSessions:
    """token -> logged-in admin, held in memory for the process lifetime."""

    def __init__(self):
        self._sessions: Dict[str, Admin] = {}
        self._lock = threading.Lock()

    def open(self, admin: Admin) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = admin
        logger.info("Admin %s logged in", admin.username)
        return token

    def get(self, token: str) -> Optional[Admin]:
        with self._lock:
            return self._sessions.get(token)

    def close(self, token: str) -> bool:
        with self._lock:
            admin = self._sessions.pop(token, None)
        if admin is not None:
            logger.info("Admin %s logged out", admin.username)
        return admin is not None

    def close_admin(self, admin_id: str) -> int:
        """End every open session of one admin; returns how many were closed."""
        with self._lock:
            tokens = [t for t, a in self._sessions.items() if a.id == admin_id]
            for token in tokens:
                del self._sessions[token]
        if tokens:
            logger.info("Closed %d session(s) of admin %s", len(tokens), admin_id)
        return len(tokens)


def login_and_open(gateway, sessions: AdminSessions, username: str, password: str) -> Tuple[str, Admin]:
    admin = login(gateway, username, password)
    return sessions.open(admin), admin


# ===================== FastAPI dependencies =====================

def get_sessions(request: Request) -> AdminSessions:
    return request.app.state.sessions


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return credentials.credentials


def get_current_admin(token: str = Depends(get_token), sessions: AdminSessions = Depends(get_sessions)) -> Admin:
    admin = sessions.get(token)
    if admin is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return admin


def require_roles(*allowed_roles: str):
    """Allows only admins whose role is in allowed_roles."""

    def dependency(admin: Admin = Depends(get_current_admin)) -> Admin:
        if admin.role not in allowed_roles:
            raise HTTPException(status_code=403, detail="You are not authorized to access that page.")
        return admin

    return dependency


require_super = require_roles("super")
require_editor = require_roles("super", "local")
