"""
backend/doit/reviews/services.py

Review Services
Business logic for reviews and ratings:
- Append a review and fold its rating into the subject's running mean
- Complete a matched task, credit the helper and record the creator's review
- List the reviews a user received, with author details
- Publish ReviewSubmitted events for interested listeners

The rating update is a read-modify-write of the profile (mean and count);
two concurrent reviews of the same user can lose one update.
"""

import logging

from doit.applications.services import APPLICATIONS
from doit.core.events import EventBus
from doit.core.exceptions import APIError, NotFoundError, ValidationFailure
from doit.database.enums import TaskStatus
from doit.database.store import SERVER_TIMESTAMP, DocumentStore, FieldFilter, Increment
from doit.reviews import schemas
from doit.tasks.services import TASKS
from doit.users.services import USERS, fetch_profiles

logger = logging.getLogger(__name__)

REVIEWS = "reviews"


def apply_rating(mean: float, count: int, rating: float) -> tuple[float, int]:
    """
    Folds one rating into a running mean.

    Returns:
        tuple[float, int]: The new mean and count.
    """
    new_count = count + 1
    return (mean * count + rating) / new_count, new_count


class ReviewService:
    """Service layer for reviews and the rating aggregate on user profiles."""

    def __init__(self, store: DocumentStore, events: EventBus | None = None) -> None:
        self.store = store
        self.events = events or store.events

    async def _aggregate_rating(self, subject_id: str, rating: int) -> None:
        profile = await self.store.get(USERS, subject_id)
        if not profile:
            logger.warning(f"[REVIEW] No profile for {subject_id}; rating not aggregated")
            return

        mean = profile.data.get("rating") or 0
        count = profile.data.get("ratingCount") or 0
        new_mean, new_count = apply_rating(mean, count, rating)
        await self.store.update(USERS, subject_id, {"rating": new_mean, "ratingCount": new_count})
        logger.info(f"[REVIEW] Rating for {subject_id}: {mean:.2f} ({count}) -> {new_mean:.2f} ({new_count})")

    # ---------------------------------------------------
    # Review Submission
    # ---------------------------------------------------
    async def create_review(
        self,
        subject_id: str,
        author_id: str,
        task_id: str,
        rating: int,
        text: str = "",
        task_title: str | None = None,
    ) -> str:
        """
        Appends a review, then updates the subject's mean rating and count.
        Ratings are expected to be validated (1-5) by the caller.
        """
        if not subject_id or not author_id or not task_id:
            raise ValidationFailure("Subject, author and task ids are required for a review.")

        review_id = await self.store.add(
            REVIEWS,
            {
                "userId": subject_id,
                "authorId": author_id,
                "taskId": task_id,
                "taskTitle": task_title,
                "rating": rating,
                "text": text,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        logger.info(f"[REVIEW] Review {review_id} by {author_id} for {subject_id} (task {task_id})")

        await self._aggregate_rating(subject_id, rating)
        await self.events.publish(
            schemas.ReviewSubmitted,
            schemas.ReviewSubmitted(
                review_id=review_id,
                task_id=task_id,
                reviewer_id=author_id,
                subject_id=subject_id,
                rating=rating,
            ),
        )
        return review_id

    async def complete_task(self, task_id: str, rating: int, text: str = "") -> str:
        """
        Marks a matched task completed, increments the helper's completed-task
        counter and records the creator's review of the helper.

        Raises:
            NotFoundError: If the task or its accepted application does not exist.
            ValidationFailure: If the task is not matched to an accepted application.
        """
        task = await self.store.get(TASKS, task_id)
        if not task:
            raise NotFoundError("Task not found.")

        if task.data.get("status") != TaskStatus.MATCHED.value:
            raise ValidationFailure("Only a matched task can be completed.")

        application_id = task.data.get("matchedApplicationId")
        if not application_id:
            raise ValidationFailure("This task has no accepted application to complete.")

        application = await self.store.get(APPLICATIONS, application_id)
        if not application:
            raise NotFoundError("The accepted application no longer exists.")
        helper_id = application.data.get("applicantId")

        await self.store.update(
            TASKS, task_id, {"status": TaskStatus.COMPLETED.value, "completedAt": SERVER_TIMESTAMP}
        )
        if await self.store.get(USERS, helper_id):
            await self.store.update(USERS, helper_id, {"completedTasks": Increment(1)})
        logger.info(f"[REVIEW] Task {task_id} completed by helper {helper_id}")

        return await self.create_review(
            subject_id=helper_id,
            author_id=task.data.get("creatorId"),
            task_id=task_id,
            rating=rating,
            text=text,
            task_title=task.data.get("title"),
        )

    # ---------------------------------------------------
    # Review Retrieval
    # ---------------------------------------------------
    async def _with_authors(self, snapshots) -> list[schemas.ReviewRead]:
        profiles = await fetch_profiles(self.store, (snapshot.data.get("authorId") for snapshot in snapshots))
        reviews = []
        for snapshot in snapshots:
            author = profiles.get(snapshot.data.get("authorId"), {})
            reviews.append(
                schemas.ReviewRead.model_validate(
                    {
                        **snapshot.to_dict(),
                        "authorName": author.get("displayName") or "Unknown user",
                        "authorPhotoURL": author.get("photoURL") or "",
                    }
                )
            )
        return reviews

    async def get_review(self, review_id: str) -> schemas.ReviewRead:
        snapshot = await self.store.get(REVIEWS, review_id)
        if not snapshot:
            raise NotFoundError("Review not found.")
        reviews = await self._with_authors([snapshot])
        return reviews[0]

    async def get_user_reviews(self, user_id: str) -> list[schemas.ReviewRead]:
        """Reviews a user received, newest first; empty when they cannot be loaded."""
        try:
            snapshots = await self.store.query(
                REVIEWS, where=[FieldFilter("userId", "==", user_id)], order_by="createdAt", descending=True
            )
        except APIError as e:
            logger.error(f"[REVIEW] Could not load reviews for {user_id}: {e.message}")
            return []
        return await self._with_authors(snapshots)
