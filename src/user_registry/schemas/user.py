"""Pydantic request/response models for the users API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model rendered with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Requests ─────────────────────────────────────────────

def _clean_text(value: object, field_name: str | None) -> object:
    """Trim strings; a mobile given as a JSON number is taken as its digits."""
    if field_name == "mobile" and isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    return value.strip() if isinstance(value, str) else value


class UserCreate(CamelModel):
    """Candidate user; values are trimmed and the email lowercased."""

    name: str = Field(..., min_length=1, examples=["Jane Doe"])
    email: str = Field(..., min_length=1, examples=["jane.doe@example.com"])
    mobile: str = Field(..., min_length=1, examples=["+15551234567"])

    @field_validator("name", "email", "mobile", mode="before")
    @classmethod
    def _strip(cls, value: object, info: ValidationInfo) -> object:
        return _clean_text(value, info.field_name)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserUpdate(CamelModel):
    """Partial update; omitted (or ``null``) fields are left untouched."""

    name: str | None = Field(None, min_length=1)
    email: str | None = Field(None, min_length=1)
    mobile: str | None = Field(None, min_length=1)

    @field_validator("name", "email", "mobile", mode="before")
    @classmethod
    def _strip(cls, value: object, info: ValidationInfo) -> object:
        return _clean_text(value, info.field_name)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str | None) -> str | None:
        return value.lower() if value is not None else value


@dataclass(frozen=True)
class SingleUser:
    """A create request carrying one user."""

    user: UserCreate


@dataclass(frozen=True)
class UserBatch:
    """A create request carrying an ordered list of users."""

    users: list[UserCreate]


UserInput = SingleUser | UserBatch


def resolve_user_input(body: UserCreate | list[UserCreate]) -> UserInput:
    """Tag a ``POST /users`` body as a single user or a batch."""
    if isinstance(body, list):
        return UserBatch(body)
    return SingleUser(body)


# ── Responses ────────────────────────────────────────────

class UserOut(CamelModel):
    id: str
    name: str
    email: str
    mobile: str
    created_at: datetime
    updated_at: datetime


class UserListResponse(CamelModel):
    """Envelope for bulk create, import and search results."""

    message: str | None = None
    count: int
    users: list[UserOut]


class MessageResponse(CamelModel):
    message: str


class DeleteAllResponse(CamelModel):
    message: str
    deleted_count: int


# ── Import report ────────────────────────────────────────

class DuplicateGroup(CamelModel):
    """Input entries sharing one value inside the uploaded file."""

    value: str
    entries: list[UserCreate]


class ExistingConflict(CamelModel):
    """An uploaded value that a stored user already owns."""

    value: str
    existing_user: UserOut


class InFileDuplicates(CamelModel):
    emails: list[DuplicateGroup] = []
    mobiles: list[DuplicateGroup] = []


class StoredConflicts(CamelModel):
    emails: list[ExistingConflict] = []
    mobiles: list[ExistingConflict] = []


class ImportReport(CamelModel):
    duplicates_in_file: InFileDuplicates
    existing_in_database: StoredConflicts

    @property
    def has_conflicts(self) -> bool:
        return bool(
            self.duplicates_in_file.emails
            or self.duplicates_in_file.mobiles
            or self.existing_in_database.emails
            or self.existing_in_database.mobiles
        )
