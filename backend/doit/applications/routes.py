"""
backend/doit/applications/routes.py

Application Routes
Defines API endpoints for bids on tasks:
- Apply for a task (Authenticated)
- List a task's applications (Authenticated task creator)
- Accept an application and open a chat (Authenticated task creator)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from doit.applications import schemas
from doit.applications.services import ApplicationService
from doit.core.dependencies import CurrentUserDep, get_application_service, get_task_service
from doit.core.exceptions import PermissionDeniedError, ValidationFailure
from doit.core.limiter import limiter
from doit.tasks.services import TaskService

router = APIRouter(prefix="/applications", tags=["Applications"])

ApplicationServiceDep = Annotated[ApplicationService, Depends(get_application_service)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]


@router.post(
    "/tasks/{task_id}",
    response_model=schemas.ApplicationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Apply for Task",
)
@limiter.limit("10/minute")
async def apply_for_task(
    request: Request,
    task_id: str,
    payload: schemas.ApplicationCreate,
    current_user_id: CurrentUserDep,
    service: ApplicationServiceDep,
    tasks: TaskServiceDep,
) -> schemas.ApplicationRead:
    task = await tasks.get_task(task_id)
    if task.creator_id == current_user_id:
        raise ValidationFailure("You cannot apply for your own task.")
    return await service.apply_for_task(task_id, current_user_id, payload.message, payload.price)


@router.get(
    "/tasks/{task_id}",
    response_model=list[schemas.ApplicationRead],
    status_code=status.HTTP_200_OK,
    summary="Task Applications",
)
async def list_applications(
    task_id: str,
    current_user_id: CurrentUserDep,
    service: ApplicationServiceDep,
    tasks: TaskServiceDep,
) -> list[schemas.ApplicationRead]:
    task = await tasks.get_task(task_id)
    if task.creator_id != current_user_id:
        raise PermissionDeniedError("Only the task creator can view its applications.")
    return await service.list_applications(task_id)


@router.post(
    "/{application_id}/accept",
    response_model=schemas.AcceptResult,
    status_code=status.HTTP_200_OK,
    summary="Accept Application",
    description="Accept an application, mark the task matched and open a chat with the applicant.",
)
@limiter.limit("10/minute")
async def accept_application(
    request: Request,
    application_id: str,
    current_user_id: CurrentUserDep,
    service: ApplicationServiceDep,
    tasks: TaskServiceDep,
) -> schemas.AcceptResult:
    application = await service.get_application(application_id)
    task = await tasks.get_task(application.task_id)
    if task.creator_id != current_user_id:
        raise PermissionDeniedError("Only the task creator can accept applications.")
    return await service.accept_application(application_id, application.task_id)
