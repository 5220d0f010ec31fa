"""Users router — CRUD, search and JSON file import.

Endpoints
---------
POST   /users              → create one user or a batch
GET    /users              → list all users
GET    /users/search       → case-insensitive search (?query=...)
GET    /users/{user_id}    → fetch one user
PUT    /users/{user_id}    → partial update
DELETE /users/delete-all   → remove every user
DELETE /users/{user_id}    → remove one user
POST   /users/import       → multipart upload (field ``file``) of JSON users
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from user_registry.config import settings
from user_registry.database.engine import get_session
from user_registry.database.repository import UserRepository
from user_registry.exceptions import ValidationError
from user_registry.schemas.user import (
    DeleteAllResponse,
    MessageResponse,
    UserBatch,
    UserCreate,
    UserListResponse,
    UserOut,
    UserUpdate,
    resolve_user_input,
)
from user_registry.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


async def get_user_service(session: AsyncSession = Depends(get_session)) -> UserService:
    """Build a service around a repository bound to this request's session."""
    return UserService(UserRepository(session))


# ──────────────────────────────────────────────────────────────
# Create
# ──────────────────────────────────────────────────────────────
@router.post("", status_code=status.HTTP_201_CREATED, response_model=None)
async def create_users(
    body: UserCreate | list[UserCreate] = Body(...),
    service: UserService = Depends(get_user_service),
) -> UserOut | UserListResponse:
    """Create a single user (object body) or many (array body)."""
    data = resolve_user_input(body)
    created = await service.create(data)

    if isinstance(data, UserBatch):
        return UserListResponse(
            message="Bulk users created successfully",
            count=len(created),
            users=[UserOut.model_validate(u) for u in created],
        )
    return UserOut.model_validate(created)


@router.post(
    "/import", status_code=status.HTTP_201_CREATED, response_model=UserListResponse
)
async def import_users(
    file: UploadFile | None = File(None),
    service: UserService = Depends(get_user_service),
) -> UserListResponse:
    """Import users from an uploaded JSON file (object or array of objects)."""
    if file is None:
        raise ValidationError("Please upload a JSON file")

    raw = await file.read(settings.max_upload_bytes + 1)
    if len(raw) > settings.max_upload_bytes:
        raise ValidationError(
            f"File too large (limit is {settings.max_upload_bytes} bytes)"
        )

    logger.info("Importing users from %s (%d bytes)", file.filename, len(raw))
    imported = await service.import_users(raw)
    return UserListResponse(
        message="Users imported successfully",
        count=len(imported),
        users=[UserOut.model_validate(u) for u in imported],
    )


# ──────────────────────────────────────────────────────────────
# Read
# ──────────────────────────────────────────────────────────────
@router.get("", response_model=list[UserOut])
async def list_users(service: UserService = Depends(get_user_service)) -> list[UserOut]:
    users = await service.list_users()
    return [UserOut.model_validate(u) for u in users]


@router.get("/search", response_model=UserListResponse, response_model_exclude_none=True)
async def search_users(
    query: str | None = Query(None, description="Text to look for in name, email or mobile"),
    service: UserService = Depends(get_user_service),
) -> UserListResponse:
    users = await service.search(query)
    return UserListResponse(
        count=len(users), users=[UserOut.model_validate(u) for u in users]
    )


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: str, service: UserService = Depends(get_user_service)) -> UserOut:
    return UserOut.model_validate(await service.get_user(user_id))


# ──────────────────────────────────────────────────────────────
# Update
# ──────────────────────────────────────────────────────────────
@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    changes: UserUpdate,
    service: UserService = Depends(get_user_service),
) -> UserOut:
    return UserOut.model_validate(await service.update_user(user_id, changes))


# ──────────────────────────────────────────────────────────────
# Delete
# ──────────────────────────────────────────────────────────────
@router.delete("/delete-all", response_model=DeleteAllResponse)
async def delete_all_users(
    service: UserService = Depends(get_user_service),
) -> DeleteAllResponse:
    count = await service.delete_all()
    return DeleteAllResponse(message="All users deleted successfully", deleted_count=count)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str, service: UserService = Depends(get_user_service)
) -> MessageResponse:
    await service.delete_user(user_id)
    return MessageResponse(message="User deleted successfully")
