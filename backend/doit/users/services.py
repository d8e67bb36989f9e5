"""
backend/doit/users/services.py

User Services
Business logic for user profiles:
- Create, read and update profile documents
- Check whether a display name is taken
- Upload avatars through the image pipeline
- Batched profile lookups used to enrich tasks, applications and reviews
- Level ladder based on completed tasks and rating
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from doit.core.exceptions import APIError, NotFoundError, ValidationFailure
from doit.database.store import SERVER_TIMESTAMP, DocumentStore, FieldFilter
from doit.images.services import ImageService, ImageUpload
from doit.users import schemas

logger = logging.getLogger(__name__)

USERS = "users"

USER_LEVELS: tuple[schemas.UserLevel, ...] = (
    schemas.UserLevel(name="Task Chick", min_tasks=0, min_rating=0),
    schemas.UserLevel(name="DoIt Beginner", min_tasks=3, min_rating=3),
    schemas.UserLevel(name="DoIt Pro", min_tasks=8, min_rating=3.5),
    schemas.UserLevel(name="DoIt Ninja", min_tasks=15, min_rating=4),
    schemas.UserLevel(name="Superhero", min_tasks=25, min_rating=4.5),
)


def get_user_level(completed_tasks: int, rating: float) -> schemas.UserLevel:
    """
    Returns the highest level reached without skipping one: a user with
    30 tasks but a 3.2 rating stays a DoIt Beginner.
    """
    current = USER_LEVELS[0]
    for level in USER_LEVELS:
        if completed_tasks >= level.min_tasks and rating >= level.min_rating:
            current = level
        else:
            break
    return current


async def fetch_profiles(store: DocumentStore, user_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
    """
    Looks up the distinct profiles for a set of user ids in one parallel batch.

    Missing profiles are absent from the result. If the batch fails, the
    failure is logged and an empty mapping is returned so callers fall back
    to placeholder values.
    """
    unique_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not unique_ids:
        return {}

    logger.debug(f"[USERS] Fetching {len(unique_ids)} profiles in batch")
    try:
        snapshots = await asyncio.gather(*(store.get(USERS, uid) for uid in unique_ids))
    except APIError as e:
        logger.error(f"[USERS] Batched profile lookup failed: {e.message}")
        return {}
    return {snapshot.id: snapshot.data for snapshot in snapshots if snapshot}


class UserService:
    """Service layer for user profile documents."""

    def __init__(self, store: DocumentStore, images: ImageService) -> None:
        self.store = store
        self.images = images

    # ---------------------------------------------------
    # Profile Documents
    # ---------------------------------------------------
    async def create_user_profile(
        self,
        uid: str,
        email: str | None = None,
        display_name: str | None = None,
        photo_url: str | None = None,
        **extra: Any,
    ) -> schemas.UserProfileRead:
        """Creates the profile on first sign-in; an existing profile is left untouched."""
        if not uid:
            raise ValidationFailure("A user id is required to create a profile.")

        existing = await self.store.get(USERS, uid)
        if existing:
            logger.debug(f"[USERS] Profile already exists for {uid}")
            return schemas.UserProfileRead.model_validate({"uid": uid, **existing.data})

        data = {
            "uid": uid,
            "email": email or "",
            "displayName": display_name or "Anonymous User",
            "photoURL": photo_url or "",
            "createdAt": SERVER_TIMESTAMP,
            "completedTasks": 0,
            "postedTasks": 0,
            "rating": 0,
            "ratingCount": 0,
            "skills": [],
            "bookmarkedTasks": [],
            "location": None,
            **extra,
        }
        await self.store.set(USERS, uid, data)
        logger.info(f"[USERS] Created profile for {uid}")
        return await self.get_profile_or_404(uid)

    async def get_user_profile(self, uid: str) -> schemas.UserProfileRead | None:
        """Returns the profile, or None when it is missing or cannot be read."""
        if not uid:
            logger.error("[USERS] get_user_profile called with empty uid")
            return None
        try:
            snapshot = await self.store.get(USERS, uid)
        except APIError as e:
            logger.error(f"[USERS] Could not load profile {uid}: {e.message}")
            return None
        if not snapshot:
            logger.warning(f"[USERS] No profile found for {uid}")
            return None
        return schemas.UserProfileRead.model_validate({**snapshot.data, "uid": snapshot.data.get("uid") or uid})

    async def get_profile_or_404(self, uid: str) -> schemas.UserProfileRead:
        profile = await self.get_user_profile(uid)
        if not profile:
            raise NotFoundError("User profile not found.")
        return profile

    async def update_user_profile(self, uid: str, data: dict[str, Any]) -> schemas.UserProfileRead:
        """Applies a partial update, creating the profile document if it does not exist yet."""
        if not uid:
            raise ValidationFailure("A user id is required to update a profile.")

        existing = await self.store.get(USERS, uid)
        if not existing:
            logger.warning(f"[USERS] Profile {uid} missing on update, creating it")
            await self.store.set(
                USERS,
                uid,
                {**data, "uid": uid, "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP},
            )
        else:
            await self.store.update(USERS, uid, {**data, "updatedAt": SERVER_TIMESTAMP})

        logger.info(f"[USERS] Updated profile {uid} fields={sorted(data)}")
        return await self.get_profile_or_404(uid)

    async def username_exists(self, username: str) -> bool:
        """True when a profile already uses the display name, and also when the lookup fails."""
        try:
            matches = await self.store.query(USERS, where=[FieldFilter("displayName", "==", username)], limit=1)
        except APIError as e:
            logger.error(f"[USERS] Username lookup failed, treating '{username}' as taken: {e.message}")
            return True
        return bool(matches)

    # ---------------------------------------------------
    # Avatar Upload
    # ---------------------------------------------------
    async def upload_avatar(self, uid: str, upload: ImageUpload) -> schemas.UserProfileRead:
        """
        Compresses the avatar, stores it per the configured strategy and points
        the profile at it.
        """
        prepared = await self.images.prepare_avatar(uid, upload)
        # A data URI is kept in one field only to stay under the document ceiling
        patch = {
            "photoURL": prepared.url,
            "avatarUrl": None if prepared.inline else prepared.url,
            "photoUpdatedAt": SERVER_TIMESTAMP,
        }
        profile = await self.update_user_profile(uid, patch)
        logger.info(f"[USERS] Avatar updated for {uid} (inline={prepared.inline})")
        return profile
