"""
backend/doit/tasks/services.py

Task Services
Business logic for posted tasks:
- Create a task and count it on the creator's profile
- List tasks (open tasks, or one creator's tasks) with in-memory category,
  free-text and recency shaping, falling back to the whole collection when
  the filtered query fails
- Normalize image fields and merge creator details fetched in one batch
- Update tasks without touching immutable fields
- Bookmark tasks and attach images
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from doit.core.exceptions import APIError, NotFoundError, ValidationFailure
from doit.database.enums import TaskStatus
from doit.database.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    Increment,
)
from doit.images.services import ImageService, ImageUpload
from doit.tasks import schemas
from doit.users.services import USERS, fetch_profiles

logger = logging.getLogger(__name__)

TASKS = "tasks"
IMMUTABLE_FIELDS = frozenset({"id", "creatorId", "createdAt", "applications", "status"})
UNKNOWN_CREATOR_NAME = "Unknown user"


# ---------------------------------------------------
# Normalization and In-memory Shaping
# ---------------------------------------------------
def normalize_task(snapshot: DocumentSnapshot) -> dict[str, Any]:
    """
    Guarantees `imageUrls` is a list and synthesizes the legacy `imageUrl`
    field from its first element when it is not stored.
    """
    data = snapshot.data
    image_urls = data.get("imageUrls") if isinstance(data.get("imageUrls"), list) else []
    return {
        **data,
        "id": snapshot.id,
        "imageUrls": image_urls,
        "imageUrl": data.get("imageUrl") or (image_urls[0] if image_urls else None),
    }


def _matches_search(task: dict[str, Any], search: str) -> bool:
    needle = search.strip().lower()
    if not needle:
        return True
    title = str(task.get("title") or "").lower()
    description = str(task.get("description") or "").lower()
    return needle in title or needle in description


def shape_tasks(
    tasks: Iterable[dict[str, Any]],
    category: str | None = None,
    search: str | None = None,
) -> list[dict[str, Any]]:
    """Filters by category and search text, then sorts newest first."""
    shaped = list(tasks)
    if category:
        shaped = [task for task in shaped if task.get("category") == category]
    if search:
        shaped = [task for task in shaped if _matches_search(task, search)]
    # Stored timestamps are ISO-8601 UTC strings, so string order is time order
    shaped.sort(key=lambda task: str(task.get("createdAt") or ""), reverse=True)
    return shaped


# ---------------------------------------------------
# Task Service
# ---------------------------------------------------
class TaskService:
    """Service layer for task documents and bookmarks."""

    def __init__(self, store: DocumentStore, images: ImageService) -> None:
        self.store = store
        self.images = images

    async def _enrich_creators(self, tasks: list[dict[str, Any]]) -> list[schemas.TaskRead]:
        """Merges creator name, photo and rating onto each task using one batched lookup."""
        profiles = await fetch_profiles(self.store, (task.get("creatorId") for task in tasks))
        enriched = []
        for task in tasks:
            profile = profiles.get(task.get("creatorId"), {})
            enriched.append(
                schemas.TaskRead.model_validate(
                    {
                        **task,
                        "creatorName": profile.get("displayName") or UNKNOWN_CREATOR_NAME,
                        "creatorPhotoURL": profile.get("photoURL") or "",
                        "creatorRating": profile.get("rating") or 0,
                    }
                )
            )
        return enriched

    # ---------------------------------------------------
    # Create / Read
    # ---------------------------------------------------
    async def create_task(self, creator_id: str, data: dict[str, Any]) -> schemas.TaskRead:
        """
        Inserts an open task and increments the creator's posted-task counter.
        Backend rejections propagate to the caller.
        """
        if not creator_id:
            raise ValidationFailure("A creator id is required to post a task.")

        document = {
            **data,
            "creatorId": creator_id,
            "status": TaskStatus.OPEN.value,
            "createdAt": SERVER_TIMESTAMP,
            "applications": [],
        }
        task_id = await self.store.add(TASKS, document)
        await self.store.update(USERS, creator_id, {"postedTasks": Increment(1)})

        logger.info(f"[TASKS] Task {task_id} created by {creator_id}")
        return await self.get_task(task_id)

    async def get_task(self, task_id: str) -> schemas.TaskRead:
        snapshot = await self.store.get(TASKS, task_id)
        if not snapshot:
            logger.warning(f"[TASKS] Task not found: {task_id}")
            raise NotFoundError("Task not found.")
        enriched = await self._enrich_creators([normalize_task(snapshot)])
        return enriched[0]

    async def list_tasks(
        self,
        creator_id: str | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> list[schemas.TaskRead]:
        """
        Lists a creator's tasks (any status) or, without a creator, the open tasks.

        Category and search filters and the newest-first sort are applied in
        memory. If the filtered query fails, the whole collection is fetched
        and shaped the same way.
        """
        if creator_id:
            where = [FieldFilter("creatorId", "==", creator_id)]
        else:
            where = [FieldFilter("status", "==", TaskStatus.OPEN.value)]

        try:
            snapshots = await self.store.query(TASKS, where=where)
        except APIError as e:
            logger.error(f"[TASKS] Filtered task query failed, falling back to full collection: {e.message}")
            snapshots = await self.store.query(TASKS)

        tasks = shape_tasks((normalize_task(snapshot) for snapshot in snapshots), category, search)
        logger.debug(f"[TASKS] Listing {len(tasks)} tasks (creator={creator_id}, category={category})")
        return await self._enrich_creators(tasks)

    # ---------------------------------------------------
    # Update
    # ---------------------------------------------------
    async def update_task(self, task_id: str, patch: dict[str, Any]) -> schemas.TaskRead:
        """Writes a partial update with immutable fields removed and `updatedAt` stamped."""
        update_data = {key: value for key, value in patch.items() if key not in IMMUTABLE_FIELDS}
        stripped = sorted(set(patch) & IMMUTABLE_FIELDS)
        if stripped:
            logger.warning(f"[TASKS] Ignoring immutable fields on task {task_id}: {stripped}")

        if "imageUrls" in update_data and not isinstance(update_data["imageUrls"], list):
            update_data["imageUrls"] = []
        update_data["updatedAt"] = SERVER_TIMESTAMP

        await self.store.update(TASKS, task_id, update_data)
        logger.info(f"[TASKS] Task {task_id} updated")
        return await self.get_task(task_id)

    async def attach_task_images(self, task_id: str, uploads: Sequence[ImageUpload]) -> schemas.TaskRead:
        """Appends the images that could be prepared; failed files are skipped."""
        task = await self.get_task(task_id)
        urls = await self.images.prepare_task_images(task_id, uploads)
        if not urls:
            logger.warning(f"[TASKS] No images could be attached to task {task_id}")
            return task

        await self.store.update(
            TASKS,
            task_id,
            {"imageUrls": [*task.image_urls, *urls], "updatedAt": SERVER_TIMESTAMP},
        )
        return await self.get_task(task_id)

    # ---------------------------------------------------
    # Bookmarks
    # ---------------------------------------------------
    async def bookmark_task(self, user_id: str, task_id: str) -> None:
        await self.store.update(USERS, user_id, {"bookmarkedTasks": ArrayUnion(task_id)})
        logger.info(f"[TASKS] User {user_id} bookmarked task {task_id}")

    async def remove_bookmark(self, user_id: str, task_id: str) -> None:
        await self.store.update(USERS, user_id, {"bookmarkedTasks": ArrayRemove(task_id)})
        logger.info(f"[TASKS] User {user_id} removed bookmark {task_id}")

    async def get_bookmarked_tasks(self, user_id: str) -> list[schemas.TaskRead]:
        """Resolves the bookmark set to tasks, dropping ids whose task no longer exists."""
        profile = await self.store.get(USERS, user_id)
        if not profile:
            return []
        task_ids = profile.data.get("bookmarkedTasks") or []
        if not task_ids:
            return []

        snapshots = await asyncio.gather(*(self.store.get(TASKS, task_id) for task_id in task_ids))
        tasks = [normalize_task(snapshot) for snapshot in snapshots if snapshot]
        if len(tasks) < len(task_ids):
            logger.debug(f"[TASKS] {len(task_ids) - len(tasks)} bookmarked tasks no longer exist")
        return await self._enrich_creators(tasks)

    async def is_task_bookmarked(self, user_id: str, task_id: str) -> bool:
        try:
            profile = await self.store.get(USERS, user_id)
        except APIError as e:
            logger.error(f"[TASKS] Bookmark lookup failed for {user_id}: {e.message}")
            return False
        if not profile:
            return False
        return task_id in (profile.data.get("bookmarkedTasks") or [])
