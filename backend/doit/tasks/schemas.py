"""
backend/doit/tasks/schemas.py

Task Schemas
Defines Pydantic schemas for posted tasks:
- TaskCreate: Payload for posting a task
- TaskUpdate: Partial update payload (immutable fields are stripped by the service)
- TaskRead: Normalized task with creator details
- BookmarkStatus: Whether a task is bookmarked by the caller
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import ConfigDict, Field

from doit.core.schemas import DocumentModel
from doit.database.enums import TaskStatus


class TaskCreate(DocumentModel):
    """Payload for posting a task. Additional fields are stored as sent."""

    model_config = ConfigDict(extra="allow")

    title: Annotated[str, Field(min_length=1, max_length=200, description="Short task title")]
    description: str = Field(default="", description="What needs to be done")
    category: str = Field(..., min_length=1, description="Task category, e.g. 'garden'")
    price: Annotated[float, Field(ge=0, description="Offered price")]
    location: str | None = Field(default=None, description="Where the task takes place")
    image_urls: list[str] = Field(default_factory=list, description="Image URLs or data URIs")


class TaskUpdate(DocumentModel):
    """Partial task update. Additional fields are accepted and stored."""

    model_config = ConfigDict(extra="allow")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category: str | None = Field(default=None, min_length=1)
    price: float | None = Field(default=None, ge=0)
    location: str | None = None
    image_urls: list[str] | None = None


class TaskRead(DocumentModel):
    """Task as returned by every listing path."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Task identifier")
    title: str = Field(default="", description="Short task title")
    description: str = Field(default="", description="What needs to be done")
    category: str | None = Field(default=None, description="Task category")
    price: float | None = Field(default=None, description="Offered price")
    creator_id: str | None = Field(default=None, description="User who posted the task")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="Lifecycle status")
    image_urls: list[str] = Field(default_factory=list, description="Image URLs or data URIs")
    image_url: str | None = Field(default=None, description="First image, kept for older clients")
    applications: list[Any] = Field(default_factory=list)
    matched_application_id: str | None = Field(default=None, description="Accepted application")
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    creator_name: str = Field(default="Unknown user", description="Creator display name")
    creator_photo_url: str = Field(default="", alias="creatorPhotoURL", description="Creator avatar")
    creator_rating: float = Field(default=0, description="Creator mean rating")


class BookmarkStatus(DocumentModel):
    task_id: str
    bookmarked: bool
