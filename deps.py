import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from models import User
from services import config

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login/access-token")

ACCESS = "access"
REFRESH = "refresh"


def decode_token(token: str, kind: str) -> uuid.UUID:
    """User id from a signed token of the given kind; ValueError on anything unusable."""
    secret = config.SECRET_KEY if kind == ACCESS else config.REFRESH_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError(str(e))
    if payload.get("type") != kind:
        raise ValueError(f"expected {kind} token")
    return uuid.UUID(str(payload.get("sub")))


async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        user_id = decode_token(token, ACCESS)
    except ValueError:
        raise cred_exc
    user = await User.get_or_none(id=user_id)
    if user is None:
        raise cred_exc
    return user


async def get_current_active_user(user: User = Depends(get_current_user)) -> User:
    if user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return user


async def get_current_admin_user(user: User = Depends(get_current_active_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return user
