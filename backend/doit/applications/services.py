"""
backend/doit/applications/services.py

Application Services
Business logic for bids on tasks:
- Apply for a task (duplicates from the same applicant are allowed)
- Accept an application: mark it accepted, mark the task matched and open
  a chat between creator and applicant
- List a task's applications with applicant details
"""

import asyncio
import logging

from doit.applications import schemas
from doit.core.exceptions import NotFoundError, ValidationFailure
from doit.database.enums import ApplicationStatus, TaskStatus
from doit.database.store import SERVER_TIMESTAMP, DocumentStore, FieldFilter
from doit.messaging.services import ChatService
from doit.tasks.services import TASKS
from doit.users.services import fetch_profiles

logger = logging.getLogger(__name__)

APPLICATIONS = "applications"


class ApplicationService:
    """Service layer for task applications."""

    def __init__(self, store: DocumentStore, chats: ChatService) -> None:
        self.store = store
        self.chats = chats

    async def apply_for_task(self, task_id: str, applicant_id: str, message: str, price: float) -> schemas.ApplicationRead:
        """Inserts a pending application for an existing task."""
        if not task_id or not applicant_id:
            raise ValidationFailure("Task and applicant ids are required to apply.")

        task = await self.store.get(TASKS, task_id)
        if not task:
            raise NotFoundError("Task not found.")

        application_id = await self.store.add(
            APPLICATIONS,
            {
                "taskId": task_id,
                "applicantId": applicant_id,
                "message": message,
                "price": price,
                "status": ApplicationStatus.PENDING.value,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        logger.info(f"[APPLICATIONS] User {applicant_id} applied for task {task_id} ({application_id})")
        return await self.get_application(application_id)

    async def get_application(self, application_id: str) -> schemas.ApplicationRead:
        snapshot = await self.store.get(APPLICATIONS, application_id)
        if not snapshot:
            raise NotFoundError("Application not found.")
        return schemas.ApplicationRead.model_validate(snapshot.to_dict())

    async def accept_application(self, application_id: str, task_id: str) -> schemas.AcceptResult:
        """
        Accepts an application in three independent steps: application
        accepted, task matched, chat opened. A failure in a later step leaves
        the earlier ones committed.

        Raises:
            NotFoundError: If the application or the task does not exist.
            ValidationFailure: If the application belongs to another task, or
                the task is no longer open.
        """
        application, task = await asyncio.gather(
            self.store.get(APPLICATIONS, application_id),
            self.store.get(TASKS, task_id),
        )
        if not application:
            raise NotFoundError("Application not found.")
        if not task:
            raise NotFoundError("Task not found.")
        if application.data.get("taskId") != task_id:
            raise ValidationFailure("This application was made for a different task.")
        if task.data.get("status") != TaskStatus.OPEN.value:
            raise ValidationFailure("This task already has an accepted application.")

        await self.store.update(
            APPLICATIONS,
            application_id,
            {"status": ApplicationStatus.ACCEPTED.value, "updatedAt": SERVER_TIMESTAMP},
        )
        await self.store.update(
            TASKS,
            task_id,
            {
                "status": TaskStatus.MATCHED.value,
                "matchedApplicationId": application_id,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info(f"[APPLICATIONS] Application {application_id} accepted, task {task_id} matched")

        chat_id = await self.chats.create_chat(
            task_id, task.data.get("creatorId"), application.data.get("applicantId")
        )
        return schemas.AcceptResult(application_id=application_id, task_id=task_id, chat_id=chat_id)

    async def list_applications(self, task_id: str) -> list[schemas.ApplicationRead]:
        """A task's applications, oldest first, with applicant name and photo."""
        snapshots = await self.store.query(
            APPLICATIONS, where=[FieldFilter("taskId", "==", task_id)], order_by="createdAt"
        )
        profiles = await fetch_profiles(self.store, (snapshot.data.get("applicantId") for snapshot in snapshots))

        applications = []
        for snapshot in snapshots:
            profile = profiles.get(snapshot.data.get("applicantId"), {})
            applications.append(
                schemas.ApplicationRead.model_validate(
                    {
                        **snapshot.to_dict(),
                        "applicantName": profile.get("displayName") or "Unknown user",
                        "applicantPhotoURL": profile.get("photoURL") or "",
                    }
                )
            )
        return applications
