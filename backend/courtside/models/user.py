"""
Club member as provisioned by the identity layer (Telegram login).

The booking engine only reads users: role for staff checks and
telegram_id as the notification target.
"""

import enum

from sqlalchemy import BigInteger, Column, Enum, Integer, String

from courtside.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    PLAYER = "player"
    ASSISTANT = "assistant"
    OWNER = "owner"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    username = Column(String(100), nullable=True)
    level = Column(String(20), nullable=True)
    role = Column(
        Enum(
            UserRole,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
            length=20,
            name="user_role",
        ),
        nullable=False,
        default=UserRole.PLAYER,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, role={self.role})>"
