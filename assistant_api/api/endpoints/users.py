import logging
from typing import Annotated
from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from assistant_api.core import schemas, models
from assistant_api.core.database import get_db
from assistant_api.core.security import get_current_user, hash_password

router = APIRouter(prefix="/profile", tags=["Users"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


# Add user
@router.post(
    "/signup",
    response_model=schemas.UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def sign_up(user: schemas.CreateUser, db: db_dep):
    # Validate whether a user already exists
    query = select(models.User).where(models.User.email == user.email)
    result = await db.execute(query)
    db_user = result.scalars().first()

    if db_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists"
        )

    # Hash the password and add new user to the db, admins are never self-made
    try:
        hashed_pwd = hash_password(user.password)
        new_user = models.User(
            name=user.name,
            email=user.email,
            password=hashed_pwd,
            role=schemas.UserRole.STANDARD.value,
            security_nip=user.security_nip,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        return new_user
    # Another signup with the same email won the race
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists"
        )
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to add a new user: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sign up",
        )


# Get the logged in user
@router.get("/me", response_model=schemas.UserResponse)
async def get_me(current_user: Annotated[models.User, Depends(get_current_user)]):
    return current_user
