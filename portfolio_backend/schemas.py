"""
Pydantic schemas for the portfolio API.

Request payloads keep every field optional so the routes can report missing
fields with their own messages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    message: str
    created_at: datetime


class ProjectPayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    technologies: Optional[str] = None
    link: Optional[str] = None


class ProjectResponse(BaseModel):
    id: int
    title: str
    description: str
    technologies: str
    link: str
    created_at: datetime


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    error: str
