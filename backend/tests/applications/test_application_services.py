"""
tests/applications/test_application_services.py

Test cases for applications and the accept workflow.
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from doit.applications.services import APPLICATIONS, ApplicationService
from doit.core.exceptions import BackendError, NotFoundError, ValidationFailure
from doit.database.enums import ApplicationStatus, TaskStatus
from doit.database.store import DocumentStore
from doit.images.services import ImageService
from doit.messaging.services import CHATS, ChatService
from doit.tasks.services import TASKS


@pytest.fixture
def chats(store: DocumentStore, inline_images: ImageService) -> ChatService:
    return ChatService(store, inline_images)


@pytest.fixture
def service(store: DocumentStore, chats: ChatService) -> ApplicationService:
    return ApplicationService(store, chats)


@pytest_asyncio.fixture
async def task_id(store: DocumentStore, creator: str) -> str:
    return await store.add(
        TASKS,
        {"title": "Mow lawn", "creatorId": creator, "status": TaskStatus.OPEN.value, "applications": []},
    )


@pytest.mark.asyncio
async def test_apply_for_task_creates_pending_application(
    service: ApplicationService, task_id: str, helper: str
) -> None:
    """Test that applying stores a pending application with a creation time."""
    application = await service.apply_for_task(task_id, helper, "I can do it today", 18)

    assert application.status == ApplicationStatus.PENDING
    assert application.task_id == task_id
    assert application.applicant_id == helper
    assert application.price == 18
    assert application.created_at is not None


@pytest.mark.asyncio
async def test_apply_for_missing_task_raises(service: ApplicationService, helper: str) -> None:
    """Test that applications can only target existing tasks."""
    with pytest.raises(NotFoundError):
        await service.apply_for_task("missing", helper, "hi", 5)


@pytest.mark.asyncio
async def test_accept_application_matches_task_and_opens_chat(
    service: ApplicationService, store: DocumentStore, task_id: str, creator: str, helper: str
) -> None:
    """Test the three accept steps: application accepted, task matched, chat opened."""
    application = await service.apply_for_task(task_id, helper, "I can help", 20)

    result = await service.accept_application(application.id, task_id)

    stored_application = (await store.get(APPLICATIONS, application.id)).data
    assert stored_application["status"] == "accepted"
    assert "updatedAt" in stored_application

    task = (await store.get(TASKS, task_id)).data
    assert task["status"] == "matched"
    assert task["matchedApplicationId"] == application.id

    chat = (await store.get(CHATS, result.chat_id)).data
    assert chat["taskId"] == task_id
    assert chat["participants"] == [creator, helper]
    assert chat["lastMessage"] is None


@pytest.mark.asyncio
async def test_accept_keeps_earlier_steps_when_chat_fails(
    service: ApplicationService, store: DocumentStore, chats: ChatService, task_id: str, helper: str
) -> None:
    """Test that a failed chat creation leaves the application accepted and the task matched."""
    application = await service.apply_for_task(task_id, helper, "I can help", 20)

    with patch.object(chats, "create_chat", new_callable=AsyncMock, side_effect=BackendError("unavailable")):
        with pytest.raises(BackendError):
            await service.accept_application(application.id, task_id)

    assert (await store.get(APPLICATIONS, application.id)).data["status"] == "accepted"
    assert (await store.get(TASKS, task_id)).data["status"] == "matched"
    assert await store.query(CHATS) == []


@pytest.mark.asyncio
async def test_second_accept_on_matched_task_is_rejected(
    service: ApplicationService, store: DocumentStore, task_id: str, helper: str
) -> None:
    """Test that a task accepts exactly one application and opens one chat."""
    first = await service.apply_for_task(task_id, helper, "I can help", 20)
    second = await service.apply_for_task(task_id, "stranger", "Me too", 15)
    await service.accept_application(first.id, task_id)

    with pytest.raises(ValidationFailure):
        await service.accept_application(second.id, task_id)

    assert (await store.get(APPLICATIONS, second.id)).data["status"] == "pending"
    assert (await store.get(TASKS, task_id)).data["matchedApplicationId"] == first.id
    assert len(await store.query(CHATS)) == 1


@pytest.mark.asyncio
async def test_accept_rejects_application_for_another_task(
    service: ApplicationService, store: DocumentStore, task_id: str, creator: str, helper: str
) -> None:
    """Test that an application can only be accepted for the task it was made for."""
    other_task = await store.add(TASKS, {"title": "Paint fence", "creatorId": creator, "status": "open"})
    application = await service.apply_for_task(other_task, helper, "I can help", 20)

    with pytest.raises(ValidationFailure):
        await service.accept_application(application.id, task_id)
    with pytest.raises(NotFoundError):
        await service.accept_application("missing", task_id)

    assert (await store.get(TASKS, task_id)).data["status"] == "open"


@pytest.mark.asyncio
async def test_list_applications_oldest_first_with_applicant_details(
    service: ApplicationService, task_id: str, helper: str
) -> None:
    """Test that applications list in creation order with applicant names."""
    await service.apply_for_task(task_id, helper, "first", 10)
    await service.apply_for_task(task_id, "stranger", "second", 12)

    applications = await service.list_applications(task_id)

    assert [a.message for a in applications] == ["first", "second"]
    assert applications[0].applicant_name == "Hugo"
    assert applications[1].applicant_name == "Unknown user"
