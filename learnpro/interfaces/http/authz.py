from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from ...infrastructure.db import get_db
from ...infrastructure.models import Course, UserORM
from ...infrastructure.security import decode_token

# auto_error=False: a missing header is a 401 here, not FastAPI's default 403
bearer = HTTPBearer(auto_error=False)


def get_claims(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> int:
    """Return the user id carried by the bearer token.

    Runs before any database dependency so anonymous calls never reach the store.
    """
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authorization header")
    try:
        return decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(user_id: int = Depends(get_claims), db: Session = Depends(get_db)) -> UserORM:
    user = db.get(UserORM, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is disabled")
    return user


def require_roles(*roles: str):
    def checker(user: UserORM = Depends(get_current_user)) -> UserORM:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
    return checker


require_admin = require_roles("admin")
require_author = require_roles("admin", "instructor")


def can_manage(course: Course, user: UserORM) -> bool:
    return user.role == "admin" or (course.instructor_id is not None and course.instructor_id == user.id)


def ensure_can_manage(course: Course, user: UserORM) -> None:
    if not can_manage(course, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not manage this course")


def get_optional_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> UserORM | None:
    """Resolve the caller on public routes; anonymous or bad tokens yield None."""
    if creds is None or not creds.credentials:
        return None
    try:
        user_id = decode_token(creds.credentials)
    except JWTError:
        return None
    user = db.get(UserORM, user_id)
    return user if user is not None and user.is_active else None
