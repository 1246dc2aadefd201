# routers/auth.py
import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from jose import jwt

from deps import ACCESS, REFRESH, decode_token, get_current_active_user
from models import User
from schemas import RefreshRequest, Token, UserRead
from services import config
from services.seeder import pwd_ctx

router = APIRouter(tags=["auth"])
logger = logging.getLogger("uvicorn")


def create_token(user: User, kind: str) -> str:
    if kind == ACCESS:
        secret, ttl = config.SECRET_KEY, config.ACCESS_EXPIRE_SECONDS
    else:
        secret, ttl = config.REFRESH_SECRET, config.REFRESH_EXPIRE_SECONDS
    claims = {
        "sub": str(user.id),
        "is_admin": user.is_admin,
        "type": kind,
        "exp": datetime.now(tz=timezone.utc) + timedelta(seconds=ttl),
    }
    return jwt.encode(claims, secret, algorithm=config.JWT_ALGORITHM)


def _token_pair(user: User) -> Token:
    return Token(access_token=create_token(user, ACCESS), refresh_token=create_token(user, REFRESH))


@router.post("/login/access-token", response_model=Token)
async def login(form: OAuth2PasswordRequestForm = Depends()):
    user = await User.get_or_none(username=form.username)
    if not user or not pwd_ctx.verify(form.password, user.hashed_password):
        logger.warning(f"[auth] failed login for '{form.username}'")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return _token_pair(user)


@router.post("/login/refresh-token", response_model=Token)
async def refresh_token(payload: RefreshRequest):
    try:
        user_id = decode_token(payload.refresh_token, REFRESH)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = await User.get_or_none(id=user_id)
    if not user or user.disabled:
        raise HTTPException(status_code=401, detail="User not found")
    return _token_pair(user)


@router.get("/users/me", response_model=UserRead)
async def read_me(current_user: User = Depends(get_current_active_user)):
    return UserRead.model_validate(current_user)
