from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    String,
    Numeric,
    TIMESTAMP,
    Text,
)
from sqlalchemy.sql import func

from assistant_api.core.database import Base


def created_at_column():
    return Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


def updated_at_column():
    return Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


def owner_column(unique: bool = False):
    return Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        unique=unique,
    )


# =========================
# User
# =========================
class User(Base):
    """
    The authenticated principal.
    The assistant can reach this table through raw SQL, so the role is
    constrained at the database level and never trusted from a signup payload.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'standard')", name="ck_users_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="standard")

    # Second factor for critical statements
    security_nip = Column(String, nullable=True)

    created_at = created_at_column()
    updated_at = updated_at_column()


# =========================
# Palette (global catalogue, not owned by a user)
# =========================
class Palette(Base):
    __tablename__ = "palettes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)

    created_at = created_at_column()
    updated_at = updated_at_column()


# =========================
# Personal data owned by a user
# =========================
class Note(Base):
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    title = Column(String, nullable=False)
    content = Column(Text)

    created_at = created_at_column()
    updated_at = updated_at_column()


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    title = Column(String, nullable=False)
    description = Column(Text)
    start_time = Column(TIMESTAMP(timezone=True), nullable=False)
    end_time = Column(TIMESTAMP(timezone=True))
    reminder_minutes_before = Column(Integer, server_default="15")
    status = Column(String, nullable=False, server_default="pending")

    created_at = created_at_column()
    updated_at = updated_at_column()


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    name = Column(String, nullable=False)
    phone = Column(String)
    email = Column(String)
    company = Column(String)
    notes = Column(Text)

    created_at = created_at_column()
    updated_at = updated_at_column()


class Income(Base):
    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String)
    source = Column(String)
    date = Column(Date)

    created_at = created_at_column()
    updated_at = updated_at_column()


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String)
    category = Column(String)
    date = Column(Date)

    created_at = created_at_column()
    updated_at = updated_at_column()


class Memory(Base):
    """Key/value facts the assistant remembers about its user."""

    __tablename__ = "memories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    key = Column(String, nullable=False)
    value = Column(Text, nullable=False)
    type = Column(String, nullable=False, server_default="fact")

    created_at = created_at_column()
    updated_at = updated_at_column()


class AssistantPreference(Base):
    __tablename__ = "assistant_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column(unique=True)

    assistant_name = Column(String)
    palette_id = Column(
        Integer, ForeignKey("palettes.id", ondelete="SET NULL"), nullable=True
    )

    created_at = created_at_column()
    updated_at = updated_at_column()


class BiometricCredential(Base):
    __tablename__ = "biometric_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = owner_column()

    credential_id = Column(String, nullable=False, unique=True)
    public_key = Column(Text, nullable=False)
    name = Column(String)
    sign_count = Column(Integer, nullable=False, server_default="0")

    created_at = created_at_column()
    updated_at = updated_at_column()
