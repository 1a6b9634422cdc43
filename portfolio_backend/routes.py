"""
HTTP routes for the portfolio API.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException

from portfolio_backend.db import DbClient, DuplicateEmailError, StorageError
from portfolio_backend.dependencies import get_db_client
from portfolio_backend.schemas import (
    HealthResponse,
    MessageResponse,
    ProjectPayload,
    ProjectResponse,
    UserPayload,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@contextmanager
def _storage_errors() -> Iterator[None]:
    """Translate storage failures into HTTP errors."""
    try:
        yield
    except DuplicateEmailError:
        raise HTTPException(status_code=409, detail="Email already exists")
    except StorageError as exc:
        logger.error("Storage operation failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _validate_user(payload: UserPayload) -> tuple[str, str]:
    name = _clean(payload.name)
    email = _clean(payload.email)
    if not name or not email:
        raise HTTPException(status_code=400, detail="Name and email are required")
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return name, email


def _validate_project(payload: ProjectPayload) -> str:
    title = _clean(payload.title)
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    return title


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="Backend is running")


# Users (contact form submissions)


@router.get("/users", response_model=list[UserResponse])
def list_users(db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        users = db.list_users()
    return [UserResponse(**user.as_dict()) for user in users]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        user = db.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(**user.as_dict())


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserPayload, db: DbClient = Depends(get_db_client)):
    """
    Store a contact form submission. Validation runs before storage is touched.
    """
    name, email = _validate_user(payload)
    with _storage_errors():
        user = db.create_user(name, email, payload.message or "")
    logger.info("Created user %d", user.id)
    return UserResponse(**user.as_dict())


@router.put("/users/{user_id}", response_model=MessageResponse)
def update_user(
    user_id: int, payload: UserPayload, db: DbClient = Depends(get_db_client)
):
    with _storage_errors():
        existing = db.get_user(user_id)
    if not existing:
        raise HTTPException(status_code=404, detail="User not found")
    name, email = _validate_user(payload)
    with _storage_errors():
        updated = db.update_user(user_id, name, email, payload.message or "")
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return MessageResponse(message="User updated successfully")


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(user_id: int, db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        deleted = db.delete_user(user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Deleted user %d", user_id)
    return MessageResponse(message="User deleted successfully")


# Projects


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        projects = db.list_projects()
    return [ProjectResponse(**project.as_dict()) for project in projects]


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(project_id: int, db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        project = db.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse(**project.as_dict())


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(payload: ProjectPayload, db: DbClient = Depends(get_db_client)):
    title = _validate_project(payload)
    with _storage_errors():
        project = db.create_project(
            title,
            description=payload.description or "",
            technologies=payload.technologies or "",
            link=payload.link or "",
        )
    logger.info("Created project %d", project.id)
    return ProjectResponse(**project.as_dict())


@router.put("/projects/{project_id}", response_model=MessageResponse)
def update_project(
    project_id: int, payload: ProjectPayload, db: DbClient = Depends(get_db_client)
):
    with _storage_errors():
        existing = db.get_project(project_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Project not found")
    title = _validate_project(payload)
    with _storage_errors():
        updated = db.update_project(
            project_id,
            title,
            description=payload.description or "",
            technologies=payload.technologies or "",
            link=payload.link or "",
        )
    if not updated:
        raise HTTPException(status_code=404, detail="Project not found")
    return MessageResponse(message="Project updated successfully")


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(project_id: int, db: DbClient = Depends(get_db_client)):
    with _storage_errors():
        deleted = db.delete_project(project_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Project not found")
    logger.info("Deleted project %d", project_id)
    return MessageResponse(message="Project deleted successfully")
