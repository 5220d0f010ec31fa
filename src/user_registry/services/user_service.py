"""User service — create, read, update, delete and import user records.

Every write is preceded by read-before-write duplicate checks that give
friendly messages in the common case.  Those checks can race with a
concurrent writer; the unique constraints in the database are what
actually hold the line, and a ``ConstraintViolation`` they raise is
turned into a ``ValidationError`` here.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError as SchemaValidationError

from user_registry.database.repository import UserRepository
from user_registry.exceptions import (
    ConstraintViolation,
    ImportConflictError,
    NotFoundError,
    ValidationError,
)
from user_registry.models.user import User
from user_registry.schemas.user import (
    DuplicateGroup,
    ExistingConflict,
    ImportReport,
    InFileDuplicates,
    SingleUser,
    StoredConflicts,
    UserBatch,
    UserCreate,
    UserInput,
    UserOut,
    UserUpdate,
)
from user_registry.services.duplicates import find_duplicates

logger = logging.getLogger(__name__)

INVALID_IMPORT_STRUCTURE = (
    "Invalid data structure. Each user must have name, email, and mobile"
)


def parse_import_payload(raw: bytes) -> list[UserCreate]:
    """Decode an uploaded JSON file into candidate users.

    A single object is treated as a one-element list.  Any entry that
    fails validation rejects the whole file.
    """
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Invalid JSON file") from exc

    entries = payload if isinstance(payload, list) else [payload]
    try:
        return [UserCreate.model_validate(entry) for entry in entries]
    except SchemaValidationError as exc:
        raise ValidationError(INVALID_IMPORT_STRUCTURE) from exc


def _to_model(candidate: UserCreate) -> User:
    return User(name=candidate.name, email=candidate.email, mobile=candidate.mobile)


class UserService:
    """Business rules for user records, on top of an injected repository."""

    def __init__(self, repository: UserRepository) -> None:
        self._repo = repository

    # ── Create ───────────────────────────────────────────

    async def create(self, data: UserInput) -> User | list[User]:
        """Create one user or a batch, depending on how *data* is tagged."""
        if isinstance(data, UserBatch):
            return await self.create_many(data.users)
        if isinstance(data, SingleUser):
            return await self.create_one(data.user)
        raise TypeError(f"Unsupported user input: {type(data).__name__}")

    async def create_one(self, candidate: UserCreate) -> User:
        if await self._repo.find_by_email(candidate.email):
            raise ValidationError("User with this email already exists")
        if await self._repo.find_by_mobile(candidate.mobile):
            raise ValidationError("User with this mobile number already exists")

        try:
            user = await self._repo.insert_one(_to_model(candidate))
        except ConstraintViolation as exc:
            raise ValidationError(
                f"This {exc.field} is already in use", {"error": exc.message}
            ) from exc

        logger.info("Created user %s (%s)", user.id, user.email)
        return user

    async def create_many(self, candidates: list[UserCreate]) -> list[User]:
        emails = [c.email for c in candidates]
        mobiles = [c.mobile for c in candidates]

        if find_duplicates(emails):
            raise ValidationError("Duplicate email addresses found in the input data")
        if find_duplicates(mobiles):
            raise ValidationError("Duplicate mobile numbers found in the input data")

        if candidates:
            existing = await self._repo.find_first_by_emails(emails)
            if existing:
                raise ValidationError(f"Email {existing.email} already exists")
            existing = await self._repo.find_first_by_mobiles(mobiles)
            if existing:
                raise ValidationError(f"Mobile number {existing.mobile} already exists")

        outcome = await self._repo.insert_many([_to_model(c) for c in candidates])
        self._raise_for_violations(outcome.violations, len(outcome.inserted), "in bulk creation")

        logger.info("Bulk created %d users", len(outcome.inserted))
        return outcome.inserted

    # ── Read ─────────────────────────────────────────────

    async def list_users(self) -> list[User]:
        return await self._repo.find_all()

    async def get_user(self, user_id: str) -> User:
        user = await self._repo.find_by_id(user_id)
        if user is None:
            raise NotFoundError()
        return user

    async def search(self, query: str | None) -> list[User]:
        """Users whose name, email or mobile contains *query* (any case)."""
        if query is None or not query.strip():
            raise ValidationError("Search query is required")
        return await self._repo.search(query.strip())

    # ── Update ───────────────────────────────────────────

    async def update_user(self, user_id: str, changes: UserUpdate) -> User:
        values = changes.model_dump(exclude_none=True)

        if "email" in values and await self._repo.find_by_email(
            values["email"], exclude_id=user_id
        ):
            raise ValidationError("Email already exists for another user")
        if "mobile" in values and await self._repo.find_by_mobile(
            values["mobile"], exclude_id=user_id
        ):
            raise ValidationError("Mobile number already exists for another user")

        try:
            user = await self._repo.update_by_id(user_id, values)
        except ConstraintViolation as exc:
            raise ValidationError(f"This {exc.field} is already in use") from exc

        if user is None:
            raise NotFoundError()
        logger.info("Updated user %s (%s)", user_id, ", ".join(values) or "no changes")
        return user

    # ── Delete ───────────────────────────────────────────

    async def delete_user(self, user_id: str) -> None:
        if await self._repo.delete_by_id(user_id) is None:
            raise NotFoundError()
        logger.info("Deleted user %s", user_id)

    async def delete_all(self) -> int:
        count = await self._repo.delete_all()
        logger.info("Deleted all users (%d removed)", count)
        return count

    # ── Import ───────────────────────────────────────────

    async def import_users(self, raw: bytes) -> list[User]:
        """Import users from an uploaded JSON file, all or nothing.

        Raises ``ImportConflictError`` with a full report if any email or
        mobile repeats inside the file or is already taken in storage.
        """
        candidates = parse_import_payload(raw)

        report = await self.build_import_report(candidates)
        if report.has_conflicts:
            logger.info("Import of %d users rejected due to duplicates", len(candidates))
            raise ImportConflictError(report.model_dump(mode="json", by_alias=True))

        outcome = await self._repo.insert_many([_to_model(c) for c in candidates])
        self._raise_for_violations(outcome.violations, len(outcome.inserted), "during import")

        logger.info("Imported %d users", len(outcome.inserted))
        return outcome.inserted

    async def build_import_report(self, candidates: list[UserCreate]) -> ImportReport:
        """Collect in-file duplicates and values already held in storage."""
        in_file = InFileDuplicates(
            emails=[
                DuplicateGroup(value=email, entries=[c for c in candidates if c.email == email])
                for email in find_duplicates(c.email for c in candidates)
            ],
            mobiles=[
                DuplicateGroup(value=mobile, entries=[c for c in candidates if c.mobile == mobile])
                for mobile in find_duplicates(c.mobile for c in candidates)
            ],
        )

        stored = StoredConflicts()
        for email in dict.fromkeys(c.email for c in candidates):
            existing = await self._repo.find_by_email(email)
            if existing:
                stored.emails.append(
                    ExistingConflict(value=email, existing_user=UserOut.model_validate(existing))
                )
        for mobile in dict.fromkeys(c.mobile for c in candidates):
            existing = await self._repo.find_by_mobile(mobile)
            if existing:
                stored.mobiles.append(
                    ExistingConflict(value=mobile, existing_user=UserOut.model_validate(existing))
                )

        return ImportReport(duplicates_in_file=in_file, existing_in_database=stored)

    @staticmethod
    def _raise_for_violations(
        violations: list[ConstraintViolation], inserted_count: int, where: str
    ) -> None:
        if not violations:
            return
        first = violations[0]
        logger.warning(
            "Unique constraint rejected %d rows %s (%d inserted)",
            len(violations),
            where,
            inserted_count,
        )
        raise ValidationError(
            f"Duplicate {first.field} found {where}",
            {"error": first.message, "insertedCount": inserted_count},
        )
