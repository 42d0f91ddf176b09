"""assistant schema: users and personal data tables

Revision ID: 0001_assistant_schema
Revises:
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_assistant_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OWNED_TABLES = (
    "notes",
    "appointments",
    "contacts",
    "incomes",
    "expenses",
    "memories",
    "biometric_credentials",
)


def timestamps():
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def owner(unique: bool = False):
    return sa.Column(
        "user_id",
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="standard"),
        sa.Column("security_nip", sa.String(), nullable=True),
        *timestamps(),
        sa.CheckConstraint("role IN ('admin', 'standard')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "palettes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        *timestamps(),
    )

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.Text()),
        *timestamps(),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True)),
        sa.Column("reminder_minutes_before", sa.Integer(), server_default="15"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        *timestamps(),
    )

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String()),
        sa.Column("email", sa.String()),
        sa.Column("company", sa.String()),
        sa.Column("notes", sa.Text()),
        *timestamps(),
    )

    for table, extra in (("incomes", "source"), ("expenses", "category")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            owner(),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("description", sa.String()),
            sa.Column(extra, sa.String()),
            sa.Column("date", sa.Date()),
            *timestamps(),
        )

    op.create_table(
        "memories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="fact"),
        *timestamps(),
    )

    op.create_table(
        "assistant_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(unique=True),
        sa.Column("assistant_name", sa.String()),
        sa.Column(
            "palette_id",
            sa.Integer(),
            sa.ForeignKey("palettes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *timestamps(),
    )

    op.create_table(
        "biometric_credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        owner(),
        sa.Column("credential_id", sa.String(), nullable=False, unique=True),
        sa.Column("public_key", sa.Text(), nullable=False),
        sa.Column("name", sa.String()),
        sa.Column("sign_count", sa.Integer(), nullable=False, server_default="0"),
        *timestamps(),
    )

    # Every assistant query filters on the owner
    for table in OWNED_TABLES:
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])


def downgrade() -> None:
    for table in OWNED_TABLES:
        op.drop_index(f"ix_{table}_user_id", table_name=table)
    for table in (
        "biometric_credentials",
        "assistant_preferences",
        "memories",
        "expenses",
        "incomes",
        "contacts",
        "appointments",
        "notes",
        "palettes",
    ):
        op.drop_table(table)
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
