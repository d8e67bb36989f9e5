"""
backend/doit/messaging/websocket.py

Chat WebSocket Route

Handles live chat via WebSocket:
- Authenticates clients with a bearer token (header or `token` query parameter)
- Authorizes chat participation
- Receives and stores text messages
- Pushes the full ordered message log to every participant after each change
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from doit.core.dependencies import get_chat_service, get_user_id_from_ws
from doit.core.exceptions import APIError
from doit.messaging.manager import manager
from doit.messaging.services import ChatService

# ---------------------------------------------------
# Router Configuration
# ---------------------------------------------------
router = APIRouter()
logger = logging.getLogger(__name__)


# ---------------------------------------------------
# WebSocket Endpoint
# ---------------------------------------------------
@router.websocket("/chats/ws/{chat_id}")
async def chat_websocket(
    websocket: WebSocket,
    chat_id: str,
    chats: Annotated[ChatService, Depends(get_chat_service)],
) -> None:
    """
    Handle a WebSocket connection for a chat.
    """
    user_id = await get_user_id_from_ws(websocket)
    if not user_id:
        logger.warning(f"[WEBSOCKET] Authentication failed for chat {chat_id}")
        return None

    # Authorize the user's access to the chat
    try:
        await chats.get_chat_for_participant(chat_id, user_id)
        logger.info(f"[WEBSOCKET] User {user_id} authorized for chat {chat_id}")
    except APIError as e:
        logger.warning(f"[WEBSOCKET] Authorization failed: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"Authorization failed: {e.message}")
        return None

    await manager.connect(chat_id, websocket, chats)
    logger.info(f"[WEBSOCKET] User {user_id} connected to chat {chat_id}")

    try:
        # Continuously listen for incoming messages
        while True:
            raw_data = await websocket.receive_text()
            logger.debug(f"[WEBSOCKET] Received raw message from {user_id}: {raw_data}")

            try:
                data = json.loads(raw_data)
            except json.JSONDecodeError:
                logger.warning(f"[WEBSOCKET] Invalid JSON format from user {user_id}")
                await websocket.send_text(json.dumps({"error": "Invalid JSON format"}))
                continue

            content = data.get("content") if isinstance(data, dict) else None
            if not content:
                logger.warning(f"[WEBSOCKET] Missing content from user {user_id}")
                await websocket.send_text(json.dumps({"error": "Missing message content"}))
                continue

            try:
                # The stored message reaches every participant through the live subscription
                await chats.send_message(chat_id, user_id, content)
            except APIError as e:
                logger.error(f"[WEBSOCKET] Failed to store message from {user_id}: {e.message}")
                await websocket.send_text(json.dumps({"error": e.message}))

    except WebSocketDisconnect as exc:
        logger.info(f"[WEBSOCKET] User {user_id} disconnected from chat {chat_id} (code: {exc.code})")
    finally:
        manager.disconnect(chat_id, websocket)

    return None
