from datetime import datetime
from typing import Optional, List, Dict, Any, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, EmailStr


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    STANDARD = "standard"


class QueryIntent(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    VALIDATE_NIP = "validate_nip"


# =========================
# USER
# =========================
class UserBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr


class CreateUser(UserBase):
    # No role here: every signup is a standard user
    password: str = Field(min_length=8)
    security_nip: Optional[str] = Field(default=None, pattern=r"^\d{4,8}$")


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(UserBase):
    id: int
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Principal(BaseModel):
    """
    The caller of the gateway, detached from the ORM session.
    Passed explicitly through every pipeline stage.
    """

    id: int
    role: UserRole
    security_nip: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# =========================
# AI QUERY GATEWAY
# =========================
class QueryRequest(BaseModel):
    intent: QueryIntent
    sql: str = Field(min_length=1)
    nip: Optional[str] = None


class ExecutionOutcome(BaseModel):
    success: bool
    data: Optional[Union[List[Dict[str, Any]], Dict[str, Any]]] = None
    type: Optional[str] = None
    affected: Optional[int] = None
    executed_sql: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    sql_attempted: Optional[str] = None
