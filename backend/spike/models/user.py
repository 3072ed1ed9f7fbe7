"""
Spike Server — User SQLAlchemy Model
=====================================

What:  ORM model representing the `users` table.
How:   Inherits from the shared DeclarativeBase; Alembic revision 001 creates it.
Who:   Used by UserRepository for persistence and by handlers for serialization.
When:  Created on registration; read on login and profile lookups.

Table Design:
    - BIGINT autoincrement id: public identifier in the profile API (?user_id=)
    - username / email: unique; email is stored lowercase
    - password_hash: bcrypt output, never serialized
    - is_active: soft-delete flag; inactive users cannot log in
    - created_at / updated_at: UTC with timezone
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, text, true
from sqlalchemy.orm import Mapped, mapped_column

from spike.database import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered account."""

    __tablename__ = "users"

    # SQLite only autoincrements INTEGER PRIMARY KEY
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=UserRole.USER.value,
        server_default=text("'user'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
