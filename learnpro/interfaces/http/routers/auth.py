from fastapi import APIRouter, Depends, HTTPException, status, Request
from slowapi import Limiter
from sqlalchemy import func
from sqlalchemy.orm import Session

from ....infrastructure.db import get_db
from ....infrastructure.repositories import UserRepository
from ....infrastructure.security import PasswordHasher, create_access_token
from ....application.use_cases.register_user import RegisterUser
from ....interfaces.http.schemas import (
    RegisterReq, LoginReq, UserResp, TokenResp, ProfileUpdate, PreferencesOut, PreferencesUpdate,
)
from ....infrastructure.models import UserORM, UserPreferences
from ....config import settings
from ..authz import get_current_user

router = APIRouter(prefix="/api/auth", tags=["auth"])

LOGIN_RATE = "10/minute"


def get_limiter(request: Request) -> Limiter:
    return request.app.state.limiter


def _create_account(request: Request, payload: RegisterReq, db: Session) -> UserResp:
    user = RegisterUser(repo=UserRepository(db), hasher=PasswordHasher()).execute(
        payload.email, payload.password, payload.full_name
    )
    return UserResp(id=user.id, email=user.email, role=user.role, full_name=user.full_name)


def _issue_token(request: Request, payload: LoginReq, db: Session) -> TokenResp:
    account = db.query(UserORM).filter(func.lower(UserORM.email) == payload.email.lower()).first()
    if account is None or not PasswordHasher().verify(payload.password, account.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not account.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")
    return TokenResp(access_token=create_access_token(account.id, role=account.role))


@router.post("/register", response_model=UserResp, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterReq, request: Request,
             db: Session = Depends(get_db), limiter: Limiter = Depends(get_limiter)):
    rate = f"{settings.RATE_LIMIT_PER_MINUTE}/minute"
    return limiter.limit(rate)(_create_account)(request, payload, db)


@router.post("/login", response_model=TokenResp)
def login(payload: LoginReq, request: Request,
          db: Session = Depends(get_db), limiter: Limiter = Depends(get_limiter)):
    return limiter.limit(LOGIN_RATE)(_issue_token)(request, payload, db)


@router.get("/me", response_model=UserResp)
def me(user: UserORM = Depends(get_current_user)):
    return user

@router.put("/me", response_model=UserResp)
def update_me(
    payload: ProfileUpdate,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.full_name is not None:
        user.full_name = payload.full_name.strip() or None
    db.commit(); db.refresh(user)
    return user


def _preferences(user: UserORM, db: Session) -> UserPreferences:
    if user.preferences is None:
        user.preferences = UserPreferences()
        db.flush()
    return user.preferences

@router.get("/me/preferences", response_model=PreferencesOut)
def get_preferences(user: UserORM = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.preferences is None:
        return PreferencesOut()
    return user.preferences

@router.put("/me/preferences", response_model=PreferencesOut)
def update_preferences(
    payload: PreferencesUpdate,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prefs = _preferences(user, db)
    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(prefs, field, value)
    db.commit(); db.refresh(prefs)
    return prefs
