"""
backend/doit/messaging/schemas.py

Messaging Schemas
Defines Pydantic schemas for task chats:
- MessageCreate: Text message payload
- MessageRead: One entry of a chat's message log
- ChatRead: Chat between a task creator and the accepted applicant
"""

from datetime import datetime

from pydantic import ConfigDict, Field

from doit.core.schemas import DocumentModel
from doit.database.enums import MessageType


class MessageCreate(DocumentModel):
    content: str = Field(..., min_length=1, max_length=4000, description="Message text")


class MessageRead(DocumentModel):
    model_config = ConfigDict(extra="allow")

    id: str
    sender_id: str
    content: str = Field(..., description="Text, or image URL / data URI for image messages")
    message_type: MessageType = MessageType.TEXT
    timestamp: datetime | None = None


class ChatRead(DocumentModel):
    model_config = ConfigDict(extra="allow")

    id: str
    task_id: str | None = None
    participants: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    last_message: str | None = None
    last_message_at: datetime | None = None
