"""
backend/doit/reviews/routes.py

Review Routes
Defines API endpoints related to reviews:
- Submit a review of another user (Authenticated)
- Complete a matched task and rate the helper (Authenticated task creator)
- Fetch all reviews received by a user (Public)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from doit.core.dependencies import CurrentUserDep, get_review_service, get_task_service
from doit.core.exceptions import PermissionDeniedError, ValidationFailure
from doit.core.limiter import limiter
from doit.reviews import schemas
from doit.reviews.services import ReviewService
from doit.tasks.services import TaskService

router = APIRouter(prefix="/reviews", tags=["Reviews"])

ReviewServiceDep = Annotated[ReviewService, Depends(get_review_service)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]


# ----------------------------------------------------
# Public Review Endpoints
# ----------------------------------------------------
@router.get(
    "/users/{user_id}",
    response_model=list[schemas.ReviewRead],
    status_code=status.HTTP_200_OK,
    summary="User Reviews",
    description="Fetch all reviews received by a user, newest first (publicly accessible).",
)
@limiter.limit("30/minute")
async def get_user_reviews(request: Request, user_id: str, service: ReviewServiceDep) -> list[schemas.ReviewRead]:
    return await service.get_user_reviews(user_id)


# ----------------------------------------------------
# Authenticated Review Endpoints
# ----------------------------------------------------
@router.post(
    "",
    response_model=schemas.ReviewRead,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Review",
    description="Review another user for a task you worked on together.",
)
@limiter.limit("5/minute")
async def submit_review(
    request: Request,
    payload: schemas.ReviewWrite,
    current_user_id: CurrentUserDep,
    service: ReviewServiceDep,
) -> schemas.ReviewRead:
    if payload.user_id == current_user_id:
        raise ValidationFailure("You cannot review yourself.")
    review_id = await service.create_review(
        subject_id=payload.user_id,
        author_id=current_user_id,
        task_id=payload.task_id,
        rating=payload.rating,
        text=payload.text,
        task_title=payload.task_title,
    )
    return await service.get_review(review_id)


@router.post(
    "/tasks/{task_id}/complete",
    response_model=schemas.ReviewRead,
    status_code=status.HTTP_201_CREATED,
    summary="Complete Task",
    description="Mark a matched task completed and rate the helper (task creator only).",
)
@limiter.limit("5/minute")
async def complete_task(
    request: Request,
    task_id: str,
    payload: schemas.TaskCompletion,
    current_user_id: CurrentUserDep,
    service: ReviewServiceDep,
    tasks: TaskServiceDep,
) -> schemas.ReviewRead:
    task = await tasks.get_task(task_id)
    if task.creator_id != current_user_id:
        raise PermissionDeniedError("Only the task creator can complete this task.")
    review_id = await service.complete_task(task_id, payload.rating, payload.text)
    return await service.get_review(review_id)
