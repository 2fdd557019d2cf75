"""
Session authentication dependencies.

The session token is read from a Bearer header or, for browser clients, from the
session cookie, and looked up in the sessions table.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from deepsearch.core.config import SESSION_COOKIE_NAME
from deepsearch.core.database import get_db, utcnow
from deepsearch.models.user import AuthSession, User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthSession | None:
    """Return the unexpired session for the request's token, or None."""
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    session = db.get(AuthSession, token)
    if session is None:
        logger.info("[auth:get_auth_session] unknown session token")
        return None
    if session.expires <= utcnow():
        logger.info("[auth:get_auth_session] session expired user_id=%s", session.user_id)
        return None
    return session


def get_current_user(
    session: AuthSession | None = Depends(get_auth_session),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: require a valid session and return its User."""
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    user = db.get(User, session.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user
