"""User repository — data access layer for user records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from user_registry.exceptions import ConstraintViolation
from user_registry.models.user import User

logger = logging.getLogger(__name__)

UNIQUE_FIELDS = ("email", "mobile")


@dataclass
class BulkInsertResult:
    """Outcome of an unordered bulk insert.

    ``inserted`` holds the rows that were written; ``violations`` holds one
    entry per candidate the unique constraints rejected.
    """

    inserted: list[User] = field(default_factory=list)
    violations: list[ConstraintViolation] = field(default_factory=list)


def _violated_field(exc: IntegrityError) -> str | None:
    """Name the unique column behind *exc*, or ``None`` for other integrity errors.

    Recognises the messages SQLite, PostgreSQL and MySQL produce for
    the ``uq_users_*`` constraints.
    """
    text = str(exc.orig).lower()
    if "unique" not in text and "duplicate" not in text:
        return None
    for name in UNIQUE_FIELDS:
        if f"uq_users_{name}" in text or f"users.{name}" in text or f"({name})" in text:
            return name
    return None


class UserRepository:
    """Encapsulates all database queries related to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Reads ────────────────────────────────────────────

    async def find_all(self) -> list[User]:
        stmt = select(User).order_by(User.created_at, User.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_id(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def find_by_email(self, email: str, exclude_id: str | None = None) -> User | None:
        """Look up a user by (normalised) email, optionally ignoring one id."""
        stmt = select(User).where(User.email == email)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def find_by_mobile(self, mobile: str, exclude_id: str | None = None) -> User | None:
        """Look up a user by mobile number, optionally ignoring one id."""
        stmt = select(User).where(User.mobile == mobile)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def find_first_by_emails(self, emails: Iterable[str]) -> User | None:
        """Return any stored user whose email is in *emails*."""
        stmt = select(User).where(User.email.in_(list(emails))).limit(1)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def find_first_by_mobiles(self, mobiles: Iterable[str]) -> User | None:
        """Return any stored user whose mobile is in *mobiles*."""
        stmt = select(User).where(User.mobile.in_(list(mobiles))).limit(1)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def search(self, text: str) -> list[User]:
        """Case-insensitive substring match against name, email or mobile.

        *text* is matched literally; ``%`` and ``_`` are escaped.
        """
        stmt = (
            select(User)
            .where(
                or_(
                    User.name.icontains(text, autoescape=True),
                    User.email.icontains(text, autoescape=True),
                    User.mobile.icontains(text, autoescape=True),
                )
            )
            .order_by(User.created_at, User.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ── Writes ───────────────────────────────────────────

    async def insert_one(self, user: User) -> User:
        """Persist *user*, raising ``ConstraintViolation`` on a unique collision."""
        self._session.add(user)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            name = _violated_field(exc)
            if name is None:
                raise
            raise ConstraintViolation(name, str(exc.orig)) from exc
        return user

    async def insert_many(self, users: Sequence[User]) -> BulkInsertResult:
        """Unordered bulk insert.

        Every candidate is committed on its own, so a collision on one
        row does not undo the others.  Rows already written stay written.
        """
        outcome = BulkInsertResult()
        for user in users:
            self._session.add(user)
            try:
                await self._session.commit()
            except IntegrityError as exc:
                await self._session.rollback()
                name = _violated_field(exc)
                if name is None:
                    raise
                logger.warning("Bulk insert skipped %s: duplicate %s", user.email, name)
                outcome.violations.append(ConstraintViolation(name, str(exc.orig)))
                continue
            # Detach so a later rollback cannot expire the loaded row
            self._session.expunge(user)
            outcome.inserted.append(user)
        return outcome

    async def update_by_id(self, user_id: str, changes: Mapping[str, Any]) -> User | None:
        """Apply a partial update; returns ``None`` if *user_id* is unknown."""
        user = await self.find_by_id(user_id)
        if user is None:
            return None
        for key, value in changes.items():
            setattr(user, key, value)
        if changes:
            user.updated_at = datetime.now(UTC)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            name = _violated_field(exc)
            if name is None:
                raise
            raise ConstraintViolation(name, str(exc.orig)) from exc
        return user

    async def delete_by_id(self, user_id: str) -> User | None:
        user = await self.find_by_id(user_id)
        if user is None:
            return None
        await self._session.delete(user)
        await self._session.flush()
        return user

    async def delete_all(self) -> int:
        """Remove every user and return how many rows went."""
        result = await self._session.execute(delete(User))
        return result.rowcount or 0
