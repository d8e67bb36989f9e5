"""
backend/doit/reviews/schemas.py

Review Schemas
Defines Pydantic schemas for reviews between users:
- ReviewWrite: Review of another user after a task
- TaskCompletion: Rating given by the creator when completing a task
- ReviewRead: Stored review with author details
- ReviewSubmitted: Event published after a review has been recorded
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from doit.core.schemas import DocumentModel


class ReviewWrite(DocumentModel):
    """Payload for reviewing another user."""

    user_id: str = Field(..., min_length=1, description="User being reviewed")
    task_id: str = Field(..., min_length=1, description="Task the review refers to")
    task_title: str | None = Field(default=None, description="Task title at review time")
    rating: Annotated[int, Field(ge=1, le=5, description="Rating from 1 (lowest) to 5 (highest)")]
    text: str = Field(default="", max_length=2000, description="Optional comment")


class TaskCompletion(DocumentModel):
    """Rating the creator gives the helper when marking a task completed."""

    rating: Annotated[int, Field(ge=1, le=5, description="Rating from 1 (lowest) to 5 (highest)")]
    text: str = Field(default="", max_length=2000, description="Optional comment")


class ReviewRead(DocumentModel):
    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str = Field(..., description="Reviewed user")
    author_id: str | None = Field(default=None, description="User who wrote the review")
    task_id: str | None = None
    task_title: str | None = None
    rating: int
    text: str = ""
    created_at: datetime | None = None

    author_name: str = Field(default="Unknown user", description="Author display name")
    author_photo_url: str = Field(default="", alias="authorPhotoURL")


class ReviewSubmitted(BaseModel):
    """Published on the event bus once a review and the rating update are stored."""

    review_id: str
    task_id: str
    reviewer_id: str
    subject_id: str
    rating: int
