"""
backend/doit/tasks/routes.py

Task Routes
Defines API endpoints for tasks:
- Browse open tasks or one creator's tasks with category/search filters (Public)
- Post, edit and add images to tasks (Authenticated creator)
- Bookmark and un-bookmark tasks (Authenticated)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status

from doit.core.dependencies import (
    CurrentUserDep,
    OptionalUserDep,
    get_search_service,
    get_task_service,
)
from doit.core.exceptions import PermissionDeniedError
from doit.core.limiter import limiter
from doit.core.schemas import MessageResponse
from doit.images.services import ImageUpload
from doit.search.services import SearchService
from doit.tasks import schemas
from doit.tasks.services import TaskService

router = APIRouter(prefix="/tasks", tags=["Tasks"])

TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]


async def _get_owned_task(service: TaskService, task_id: str, user_id: str) -> schemas.TaskRead:
    task = await service.get_task(task_id)
    if task.creator_id != user_id:
        raise PermissionDeniedError("Only the creator can change this task.")
    return task


# ----------------------------------------------------
# Public Endpoints
# ----------------------------------------------------
@router.get(
    "",
    response_model=list[schemas.TaskRead],
    status_code=status.HTTP_200_OK,
    summary="List Tasks",
    description="Open tasks newest first, or every task of one creator when creatorId is given.",
)
async def list_tasks(
    service: TaskServiceDep,
    search_service: SearchServiceDep,
    current_user_id: OptionalUserDep,
    creator_id: str | None = Query(default=None, alias="creatorId"),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
) -> list[schemas.TaskRead]:
    tasks = await service.list_tasks(creator_id=creator_id, category=category, search=search)
    if search:
        await search_service.save_search_query(current_user_id, search, category)
    return tasks


# ----------------------------------------------------
# Authenticated Endpoints
# ----------------------------------------------------
@router.post(
    "",
    response_model=schemas.TaskRead,
    status_code=status.HTTP_201_CREATED,
    summary="Post Task",
)
@limiter.limit("10/minute")
async def create_task(
    request: Request,
    payload: schemas.TaskCreate,
    current_user_id: CurrentUserDep,
    service: TaskServiceDep,
) -> schemas.TaskRead:
    return await service.create_task(current_user_id, payload.model_dump(by_alias=True))


@router.get(
    "/bookmarks",
    response_model=list[schemas.TaskRead],
    status_code=status.HTTP_200_OK,
    summary="My Bookmarked Tasks",
)
async def get_bookmarked_tasks(current_user_id: CurrentUserDep, service: TaskServiceDep) -> list[schemas.TaskRead]:
    return await service.get_bookmarked_tasks(current_user_id)


@router.get(
    "/{task_id}",
    response_model=schemas.TaskRead,
    status_code=status.HTTP_200_OK,
    summary="Task Details",
)
async def get_task(task_id: str, service: TaskServiceDep) -> schemas.TaskRead:
    return await service.get_task(task_id)


@router.patch(
    "/{task_id}",
    response_model=schemas.TaskRead,
    status_code=status.HTTP_200_OK,
    summary="Edit Task",
)
@limiter.limit("10/minute")
async def update_task(
    request: Request,
    task_id: str,
    payload: schemas.TaskUpdate,
    current_user_id: CurrentUserDep,
    service: TaskServiceDep,
) -> schemas.TaskRead:
    await _get_owned_task(service, task_id, current_user_id)
    return await service.update_task(task_id, payload.model_dump(by_alias=True, exclude_unset=True))


@router.post(
    "/{task_id}/images",
    response_model=schemas.TaskRead,
    status_code=status.HTTP_200_OK,
    summary="Add Task Images",
    description="Attach JPEG, PNG, WebP or GIF images; files that cannot be processed are skipped.",
)
@limiter.limit("5/minute")
async def add_task_images(
    request: Request,
    task_id: str,
    current_user_id: CurrentUserDep,
    service: TaskServiceDep,
    files: list[UploadFile] = File(...),
) -> schemas.TaskRead:
    await _get_owned_task(service, task_id, current_user_id)
    uploads = [ImageUpload(data=await file.read(), filename=file.filename) for file in files]
    return await service.attach_task_images(task_id, uploads)


@router.get(
    "/{task_id}/bookmark",
    response_model=schemas.BookmarkStatus,
    status_code=status.HTTP_200_OK,
    summary="Bookmark Status",
)
async def get_bookmark_status(
    task_id: str, current_user_id: CurrentUserDep, service: TaskServiceDep
) -> schemas.BookmarkStatus:
    bookmarked = await service.is_task_bookmarked(current_user_id, task_id)
    return schemas.BookmarkStatus(task_id=task_id, bookmarked=bookmarked)


@router.put(
    "/{task_id}/bookmark",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Bookmark Task",
)
async def bookmark_task(task_id: str, current_user_id: CurrentUserDep, service: TaskServiceDep) -> MessageResponse:
    await service.bookmark_task(current_user_id, task_id)
    return MessageResponse(detail="Task bookmarked.")


@router.delete(
    "/{task_id}/bookmark",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Remove Bookmark",
)
async def remove_bookmark(task_id: str, current_user_id: CurrentUserDep, service: TaskServiceDep) -> MessageResponse:
    await service.remove_bookmark(current_user_id, task_id)
    return MessageResponse(detail="Bookmark removed.")
