"""
backend/doit/messaging/services.py

Chat Services
Business logic for task chats:
- Open a two-party chat for a matched task
- Append text and image messages and mirror the latest one onto the chat
- List a user's chats by recent activity
- Live subscription delivering the full ordered message log on every change
"""

import inspect
import logging
from collections.abc import Awaitable, Callable

from doit.core.events import Subscription
from doit.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailure
from doit.database.enums import MessageType
from doit.database.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, FieldFilter
from doit.images.services import ImageService, ImageUpload
from doit.messaging import schemas

logger = logging.getLogger(__name__)

CHATS = "chats"
IMAGE_SUMMARY = "📷 Image sent"

MessagesCallback = Callable[[list[schemas.MessageRead]], Awaitable[None] | None]


def messages_path(chat_id: str) -> str:
    return f"{CHATS}/{chat_id}/messages"


def _to_messages(snapshots: list[DocumentSnapshot]) -> list[schemas.MessageRead]:
    return [schemas.MessageRead.model_validate(snapshot.to_dict()) for snapshot in snapshots]


def _last_activity(chat: schemas.ChatRead) -> float:
    moment = chat.last_message_at or chat.created_at
    return moment.timestamp() if moment else 0.0


class ChatService:
    """Service layer for chats and their message logs."""

    def __init__(self, store: DocumentStore, images: ImageService) -> None:
        self.store = store
        self.images = images

    # ---------------------------------------------------
    # Chats
    # ---------------------------------------------------
    async def create_chat(self, task_id: str, creator_id: str, applicant_id: str) -> str:
        if not task_id or not creator_id or not applicant_id:
            raise ValidationFailure("Task, creator and applicant ids are required to open a chat.")

        chat_id = await self.store.add(
            CHATS,
            {
                "taskId": task_id,
                "participants": [creator_id, applicant_id],
                "createdAt": SERVER_TIMESTAMP,
                "lastMessage": None,
                "lastMessageAt": None,
            },
        )
        logger.info(f"[CHAT] Chat {chat_id} opened for task {task_id}")
        return chat_id

    async def get_chat(self, chat_id: str) -> schemas.ChatRead:
        snapshot = await self.store.get(CHATS, chat_id)
        if not snapshot:
            raise NotFoundError("Chat not found.")
        return schemas.ChatRead.model_validate(snapshot.to_dict())

    async def get_chat_for_participant(self, chat_id: str, user_id: str) -> schemas.ChatRead:
        chat = await self.get_chat(chat_id)
        if user_id not in chat.participants:
            logger.warning(f"[CHAT] User {user_id} is not a participant of chat {chat_id}")
            raise PermissionDeniedError("You are not a participant of this chat.")
        return chat

    async def list_chats(self, user_id: str) -> list[schemas.ChatRead]:
        """A user's chats, most recent activity first."""
        snapshots = await self.store.query(CHATS, where=[FieldFilter("participants", "array-contains", user_id)])
        chats = [schemas.ChatRead.model_validate(snapshot.to_dict()) for snapshot in snapshots]
        chats.sort(key=_last_activity, reverse=True)
        return chats

    # ---------------------------------------------------
    # Messages
    # ---------------------------------------------------
    async def _append(self, chat_id: str, sender_id: str, content: str, message_type: MessageType, summary: str) -> str:
        # Two independent writes: the log entry, then the chat summary
        message_id = await self.store.add(
            messages_path(chat_id),
            {
                "senderId": sender_id,
                "content": content,
                "messageType": message_type.value,
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        await self.store.update(CHATS, chat_id, {"lastMessage": summary, "lastMessageAt": SERVER_TIMESTAMP})
        return message_id

    async def send_message(self, chat_id: str, sender_id: str, content: str) -> str:
        """Appends a text message and returns its id. Backend rejections propagate."""
        if not content or not content.strip():
            raise ValidationFailure("Message content cannot be empty.")
        await self.get_chat(chat_id)

        message_id = await self._append(chat_id, sender_id, content, MessageType.TEXT, content)
        logger.info(f"[CHAT] Message {message_id} sent in chat {chat_id} by {sender_id}")
        return message_id

    async def send_image_message(self, chat_id: str, sender_id: str, upload: ImageUpload) -> str:
        """
        Compresses the image, stores it per the configured strategy and appends
        an image message. Returns the stored URL or data URI.
        """
        await self.get_chat(chat_id)
        prepared = await self.images.prepare_chat_image(chat_id, upload)

        message_id = await self._append(chat_id, sender_id, prepared.url, MessageType.IMAGE, IMAGE_SUMMARY)
        logger.info(f"[CHAT] Image message {message_id} sent in chat {chat_id} (inline={prepared.inline})")
        return prepared.url

    async def get_messages(self, chat_id: str) -> list[schemas.MessageRead]:
        snapshots = await self.store.query(messages_path(chat_id), order_by="timestamp")
        return _to_messages(snapshots)

    async def subscribe_messages(self, chat_id: str, callback: MessagesCallback) -> Subscription:
        """
        Invokes the callback with the full message log, oldest first, now and
        after every change. Cancel the returned handle to stop delivery.
        """

        async def deliver(snapshots: list[DocumentSnapshot]) -> None:
            result = callback(_to_messages(snapshots))
            if inspect.isawaitable(result):
                await result

        subscription = await self.store.subscribe(messages_path(chat_id), deliver, order_by="timestamp")
        logger.debug(f"[CHAT] Live subscription opened for chat {chat_id}")
        return subscription
