"""SQLAlchemy User model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, String, TypeDecorator, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp, even on backends that store naive values.

    SQLite keeps no offset, so rows come back naive; they are read as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """A registered user, identified by a storage-assigned opaque id.

    ``email`` and ``mobile`` are each globally unique; the unique
    constraints below are the authoritative guard; read-before-write
    checks in the service only make the common case friendlier.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    mobile: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("mobile", name="uq_users_mobile"),
    )

    @validates("name", "mobile")
    def _strip(self, key: str, value: str) -> str:
        return value.strip() if isinstance(value, str) else value

    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} email={self.email!r}>"
