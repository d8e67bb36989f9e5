"""
backend/doit/users/schemas.py

User Schemas
Defines Pydantic schemas for user profiles:
- UserProfileRead: Stored profile as returned to clients
- UserProfileUpdate: Editable profile fields
- UserLevel: Rank in the level ladder
- UsernameCheck: Result of a display name lookup
"""

from datetime import datetime

from pydantic import ConfigDict, Field

from doit.core.schemas import DocumentModel


class UserProfileRead(DocumentModel):
    """Profile document, including any additional stored fields."""

    model_config = ConfigDict(extra="allow")

    uid: str = Field(..., description="User identifier issued by the auth provider")
    email: str | None = Field(default="", description="Email address")
    display_name: str | None = Field(default="Anonymous User", description="Public display name")
    photo_url: str | None = Field(default="", alias="photoURL", description="Avatar URL or data URI")
    avatar_url: str | None = Field(default=None, description="Avatar URL or data URI")
    bio: str | None = Field(default=None, description="Short self description")
    location: str | None = Field(default=None, description="Neighborhood or city")
    skills: list[str] = Field(default_factory=list, description="Declared skills")
    completed_tasks: int = Field(default=0, description="Tasks completed as a helper")
    posted_tasks: int = Field(default=0, description="Tasks posted as a creator")
    rating: float = Field(default=0, description="Mean of all review ratings received")
    rating_count: int = Field(default=0, description="Number of reviews received")
    bookmarked_tasks: list[str] = Field(default_factory=list, description="Bookmarked task ids")
    created_at: datetime | None = Field(default=None, description="Profile creation time")
    updated_at: datetime | None = Field(default=None, description="Last profile update time")


class UserProfileUpdate(DocumentModel):
    """Fields a user may change on their own profile."""

    display_name: str | None = Field(default=None, min_length=1, max_length=80)
    bio: str | None = Field(default=None, max_length=1000)
    location: str | None = Field(default=None, max_length=200)
    skills: list[str] | None = None


class UserLevel(DocumentModel):
    name: str
    min_tasks: int
    min_rating: float


class UsernameCheck(DocumentModel):
    username: str
    exists: bool
