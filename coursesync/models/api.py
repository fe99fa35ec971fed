"""Request/response DTOs for the admin and health endpoints."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    status: str
    version: str
    environment: str
    mode: str
    timestamp: datetime
    uptime: float


class ContentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=200)
    body: str = ""
    summary: str = ""
    status: str = "draft"
    ordering: int = Field(0, ge=0)
    course_id: Optional[int] = None
    parent_id: Optional[int] = None
    featured_media: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    taxonomies: Dict[str, List[str]] = Field(default_factory=dict)


class ContentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=200)
    body: Optional[str] = None
    summary: Optional[str] = None
    status: Optional[str] = None
    ordering: Optional[int] = Field(None, ge=0)
    course_id: Optional[int] = None
    parent_id: Optional[int] = None
    featured_media: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    taxonomies: Optional[Dict[str, List[str]]] = None


class PushRequest(BaseModel):
    course_ids: List[int] = Field(..., min_length=1)


class PushItemRequest(BaseModel):
    kind: str
    id: int


class PullRequest(BaseModel):
    kinds: Optional[List[str]] = None


class ClientCreate(BaseModel):
    endpoint_url: str = Field(..., min_length=1, max_length=255)
    secret: str = Field(..., min_length=1, max_length=128)
    display_name: Optional[str] = Field(None, max_length=200)


class BackfillRequest(BaseModel):
    kinds: Optional[List[str]] = None
