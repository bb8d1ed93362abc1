from typing import Optional
from datetime import datetime
from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from kioku.core.clock import utc_now
from kioku.core.config import settings
from kioku.db.base import Base, BaseModel


class User(BaseModel):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(Text)
    avatar: Mapped[str] = mapped_column(String(50), nullable=False, default=settings.DEFAULT_AVATAR)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None


class AppState(Base):
    __tablename__ = "app_state"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
