"""
Document Gateway: User Routes
==============================

What:  User CRUD plus a resilient read that falls back to a replica.
Who:   Called by clients managing `user-<millis>` documents.

Update semantics:
    PUT /users/{id} takes a partial body. Fields it names replace the stored
    ones; `id` and `createdAt` are ignored. A concurrent write between the
    internal read and write surfaces as 409 CONFLICT; re-send the update.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query, status

from docgateway.schemas.envelope import (
    ErrorEnvelope,
    UserEnvelope,
    UserListEnvelope,
    UserMutationEnvelope,
)
from docgateway.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["Users"])

_NOT_FOUND = {404: {"description": "No user under this id", "model": ErrorEnvelope}}
_INVALID = {400: {"description": "Invalid email, role, or body", "model": ErrorEnvelope}}


@router.post(
    "",
    response_model=UserMutationEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses=_INVALID,
    summary="Create a user",
    description="Stores the body under a generated `user-<millis>` id with createdAt/updatedAt.",
)
async def create_user(
    payload: Dict[str, Any] = Body(..., description="User document (JSON object)"),
) -> UserMutationEnvelope:
    user_id, result = await user_service.create_user(payload)
    return UserMutationEnvelope.from_result(user_id, result, "User created successfully")


@router.get(
    "",
    response_model=UserListEnvelope,
    summary="List users",
)
async def list_users(
    limit: Optional[int] = Query(default=None, ge=1, le=1000, description="Max users returned"),
) -> UserListEnvelope:
    users = await user_service.list_users(limit)
    return UserListEnvelope(
        message="Users retrieved successfully",
        users=users,
        count=len(users),
    )


@router.get(
    "/{user_id}",
    response_model=UserEnvelope,
    responses=_NOT_FOUND,
    summary="Get a user",
)
async def get_user(user_id: str) -> UserEnvelope:
    result = await user_service.get_user(user_id)
    return UserEnvelope(
        message="User retrieved successfully",
        user_id=user_id,
        user=result.content,
        cas=result.cas,
    )


@router.put(
    "/{user_id}",
    response_model=UserMutationEnvelope,
    responses={
        **_NOT_FOUND,
        **_INVALID,
        409: {"description": "Modified concurrently", "model": ErrorEnvelope},
    },
    summary="Partially update a user",
)
async def update_user(
    user_id: str,
    partial: Dict[str, Any] = Body(..., description="Fields to change (JSON object)"),
) -> UserMutationEnvelope:
    result = await user_service.update_user(user_id, partial)
    return UserMutationEnvelope.from_result(user_id, result, "User updated successfully")


@router.delete(
    "/{user_id}",
    response_model=UserMutationEnvelope,
    responses=_NOT_FOUND,
    summary="Delete a user",
)
async def delete_user(user_id: str) -> UserMutationEnvelope:
    result = await user_service.delete_user(user_id)
    return UserMutationEnvelope.from_result(user_id, result, "User deleted successfully")


@router.get(
    "/{user_id}/resilient",
    response_model=UserEnvelope,
    responses={
        **_NOT_FOUND,
        500: {"description": "Non-timeout failure", "model": ErrorEnvelope},
        504: {"description": "Still timing out after all attempts", "model": ErrorEnvelope},
    },
    summary="Get a user, falling back to a replica",
)
async def get_user_resilient(user_id: str) -> UserEnvelope:
    result, source = await user_service.get_user_resilient(user_id)
    return UserEnvelope(
        message=f"User retrieved from {source}",
        user_id=user_id,
        user=result.content,
        cas=result.cas,
        source=source,
    )
