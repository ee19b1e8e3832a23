"""
api/routes/v1/users.py -- Member directory endpoints.

Routes:
  GET    /api/v1/users        -- list members (id, username, email)
  DELETE /api/v1/users/{id}   -- archive the account, then delete it

Deletion goes through ArchivalService so a copy keyed by email is retained
in archived_identities. Password hashes and OTP fields are never returned.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import ArchivedIdentityOut, DeleteUserResponse, IdentityOut, UserListResponse
from auth.archive import ArchivalService
from auth.errors import NotFound, storage_guard
from auth.store import IdentityStore

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def list_users(request: Request) -> UserListResponse:
    """Return every live member ordered by id. 404 when the directory is empty."""
    store: IdentityStore = request.app.state.identity_store
    with storage_guard("list_users"):
        identities = store.list_identities()
    if not identities:
        raise NotFound("No users found.")
    return UserListResponse(
        message="Users fetched successfully",
        users=[IdentityOut(id=i.id, username=i.username, email=i.email) for i in identities],
    )


@router.delete("/users/{user_id}", response_model=DeleteUserResponse)
def delete_user(request: Request, user_id: int) -> DeleteUserResponse:
    archival: ArchivalService = request.app.state.archival
    archived = archival.archive_and_delete(user_id)
    return DeleteUserResponse(
        message="User deleted and stored in the deleted users collection",
        archived=ArchivedIdentityOut(
            username=archived.username,
            email=archived.email,
            deleted_at=archived.deleted_at,
        ),
    )
