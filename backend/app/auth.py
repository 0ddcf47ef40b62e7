"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens, a FastAPI
dependency `get_current_user` that validates the bearer token and
returns the corresponding `User`, and `require_teacher` for
teacher-only routes.

Token verification raises HTTPExceptions on failure so it can be used
directly inside route dependencies.
"""

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import get_session
from . import models, repositories

bearer_scheme = HTTPBearer()


def decode_token(token: str):
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
                     db: Session = Depends(get_session)) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    Raises HTTPException(401) for any authentication issue.
    """
    payload = decode_token(credentials.credentials)
    user_id = payload.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    return user


def require_teacher(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.ROLE_TEACHER:
        raise HTTPException(status_code=403, detail='teacher role required')
    return user
