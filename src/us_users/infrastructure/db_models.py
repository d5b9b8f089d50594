"""SQLAlchemy ORM models for the users and users_activation_codes tables.

The repository talks raw SQL; these mappings pin down the persisted layout,
including the constraint names the repository translates into domain errors.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.us_common.database import Base

USERNAME_CONSTRAINT = "users_pkey"
EMAIL_CONSTRAINT = "users_email_key"
ACTIVATION_USER_FK = "users_activation_codes_username_fkey"


class UserModel(Base):
    __tablename__ = "users"
    __table_args__ = (
        PrimaryKeyConstraint("username", name=USERNAME_CONSTRAINT),
        UniqueConstraint("email", name=EMAIL_CONSTRAINT),
    )

    username: Mapped[str] = mapped_column(String(40), nullable=False)
    email: Mapped[str] = mapped_column(String(64), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("''")
    )
    last_name: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("''")
    )
    avatar_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("FALSE")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )


class ActivationCodeModel(Base):
    __tablename__ = "users_activation_codes"
    __table_args__ = (PrimaryKeyConstraint("username", "code"),)

    username: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("users.username", ondelete="CASCADE", name=ACTIVATION_USER_FK),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
