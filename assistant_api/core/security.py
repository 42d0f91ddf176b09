from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Annotated, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import jwt

from assistant_api.core.database import get_db
from assistant_api.core import models, schemas
from assistant_api.core.config import settings

db_dep = Annotated[AsyncSession, Depends(get_db)]

# One context for login checks and for passwords written through the gateway
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str):
    return pwd_context.hash(password)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


# Scheme name when the value is already one of our hashes, None for plaintext
def identify_hash(value: str) -> Optional[str]:
    return pwd_context.identify(value)


def create_access_token(data: dict):
    claims = dict(data)
    claims["exp"] = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[int]:
    """User id carried by a valid token, None for anything else."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    # Malformed, tampered or expired
    except jwt.InvalidTokenError:
        return None

    user_id = payload.get("user_id")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        return None
    return user_id


# Clients without a token get one at profile/login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="profile/login")


async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)], db: db_dep):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    # The role is always read from the row, never from the token
    result = await db.execute(select(models.User).where(models.User.id == user_id))
    user = result.scalars().first()

    if user is None:
        raise credentials_exception

    return user


# The gateway only needs identity, role and NIP, never the ORM object itself
async def get_current_principal(
    current_user: Annotated[models.User, Depends(get_current_user)],
) -> schemas.Principal:
    return schemas.Principal.model_validate(current_user)
