"""
backend/doit/messaging/routes.py

Messaging Routes
Defines REST endpoints for task chats (all Authenticated, participants only):
- List the caller's chats
- Fetch a chat and its message log
- Send text and image messages
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from doit.core.dependencies import CurrentUserDep, get_chat_service
from doit.core.limiter import limiter
from doit.images.services import ImageUpload
from doit.messaging import schemas
from doit.messaging.services import ChatService

router = APIRouter(prefix="/chats", tags=["Chats"])

ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


@router.get(
    "",
    response_model=list[schemas.ChatRead],
    status_code=status.HTTP_200_OK,
    summary="My Chats",
)
async def list_my_chats(current_user_id: CurrentUserDep, service: ChatServiceDep) -> list[schemas.ChatRead]:
    return await service.list_chats(current_user_id)


@router.get(
    "/{chat_id}",
    response_model=schemas.ChatRead,
    status_code=status.HTTP_200_OK,
    summary="Chat Details",
)
async def get_chat(chat_id: str, current_user_id: CurrentUserDep, service: ChatServiceDep) -> schemas.ChatRead:
    return await service.get_chat_for_participant(chat_id, current_user_id)


@router.get(
    "/{chat_id}/messages",
    response_model=list[schemas.MessageRead],
    status_code=status.HTTP_200_OK,
    summary="Chat Messages",
    description="Full message log, oldest first.",
)
async def get_messages(
    chat_id: str, current_user_id: CurrentUserDep, service: ChatServiceDep
) -> list[schemas.MessageRead]:
    await service.get_chat_for_participant(chat_id, current_user_id)
    return await service.get_messages(chat_id)


@router.post(
    "/{chat_id}/messages",
    response_model=list[schemas.MessageRead],
    status_code=status.HTTP_201_CREATED,
    summary="Send Message",
)
@limiter.limit("30/minute")
async def send_message(
    request: Request,
    chat_id: str,
    payload: schemas.MessageCreate,
    current_user_id: CurrentUserDep,
    service: ChatServiceDep,
) -> list[schemas.MessageRead]:
    await service.get_chat_for_participant(chat_id, current_user_id)
    await service.send_message(chat_id, current_user_id, payload.content)
    return await service.get_messages(chat_id)


@router.post(
    "/{chat_id}/images",
    response_model=list[schemas.MessageRead],
    status_code=status.HTTP_201_CREATED,
    summary="Send Image",
    description="Send a JPEG, PNG, WebP or GIF image (max 5 MB).",
)
@limiter.limit("10/minute")
async def send_image(
    request: Request,
    chat_id: str,
    current_user_id: CurrentUserDep,
    service: ChatServiceDep,
    file: UploadFile = File(...),
) -> list[schemas.MessageRead]:
    await service.get_chat_for_participant(chat_id, current_user_id)
    data = await file.read()
    await service.send_image_message(chat_id, current_user_id, ImageUpload(data=data, filename=file.filename))
    return await service.get_messages(chat_id)
