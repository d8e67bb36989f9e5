"""
messaging/manager.py

WebSocket connection manager for live chats.
- Handles connection lifecycle for each chat
- Keeps one message-log subscription per chat while anyone is connected
- Pushes the full ordered message list to every connected participant
"""

import asyncio
import json
import logging

from fastapi import WebSocket

from doit.core.events import Subscription
from doit.messaging.schemas import MessageRead
from doit.messaging.services import ChatService

logger = logging.getLogger(__name__)


def _messages_payload(messages: list[MessageRead]) -> str:
    return json.dumps(
        {
            "type": "messages",
            "messages": [message.model_dump(mode="json", by_alias=True) for message in messages],
        }
    )


class ConnectionManager:
    """
    Manages WebSocket connections per chat.
    """

    def __init__(self) -> None:
        # Mapping of chat_id to list of connected WebSocket clients
        self.active_connections: dict[str, list[WebSocket]] = {}
        self.subscriptions: dict[str, Subscription] = {}
        self.locks: dict[str, asyncio.Lock] = {}

    async def connect(self, chat_id: str, websocket: WebSocket, chats: ChatService) -> None:
        """
        Accepts a new WebSocket connection and sends it the current message log.
        The first connection to a chat opens its live subscription.
        """
        await websocket.accept()
        self.active_connections.setdefault(chat_id, []).append(websocket)

        try:
            async with self.locks.setdefault(chat_id, asyncio.Lock()):
                if chat_id in self.subscriptions:
                    messages = await chats.get_messages(chat_id)
                    await self.send_personal_message(_messages_payload(messages), websocket)
                    return

                async def on_change(messages: list[MessageRead]) -> None:
                    await self.broadcast_to_chat(chat_id, _messages_payload(messages))

                subscription = await chats.subscribe_messages(chat_id, on_change)
                if not self.active_connections.get(chat_id):
                    # Everyone left while the subscription was opening
                    subscription.cancel()
                    return
                self.subscriptions[chat_id] = subscription
                logger.info(f"[WEBSOCKET] Live subscription started for chat {chat_id}")
        except Exception:
            self.disconnect(chat_id, websocket)
            raise

    def disconnect(self, chat_id: str, websocket: WebSocket) -> None:
        """
        Removes a WebSocket connection; the last one out cancels the subscription.
        """
        connections = self.active_connections.get(chat_id)
        if connections and websocket in connections:
            connections.remove(websocket)
        if connections:
            return

        self.active_connections.pop(chat_id, None)
        self.locks.pop(chat_id, None)
        subscription = self.subscriptions.pop(chat_id, None)
        if subscription:
            subscription.cancel()
            logger.info(f"[WEBSOCKET] Live subscription stopped for chat {chat_id}")

    async def send_personal_message(self, message: str, websocket: WebSocket) -> None:
        """
        Sends a message to a single WebSocket client.
        """
        await websocket.send_text(message)

    async def broadcast_to_chat(self, chat_id: str, message: str) -> None:
        """
        Broadcasts a message to all participants connected to a chat.
        Sockets that fail to receive it are dropped.
        """
        for connection in list(self.active_connections.get(chat_id, [])):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.warning(f"[WEBSOCKET] Dropping connection on chat {chat_id} after failed send: {e}")
                self.disconnect(chat_id, connection)


# Global instance of the manager for import and use across modules
manager = ConnectionManager()
