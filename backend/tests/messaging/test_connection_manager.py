"""
tests/messaging/test_connection_manager.py

Test cases for the WebSocket connection manager and the chat WebSocket route.
Covers the per-chat subscription lifecycle and pushes to all participants.
"""

import asyncio
import json
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect, status

from doit.database.store import DocumentStore
from doit.images.services import ImageService
from doit.messaging import websocket as chat_websocket_module
from doit.messaging.manager import ConnectionManager
from doit.messaging.services import ChatService, messages_path


def _fake_socket() -> AsyncMock:
    socket = AsyncMock()
    socket.sent = []
    socket.send_text.side_effect = socket.sent.append
    return socket


def _last_payload(socket: AsyncMock) -> dict:
    return json.loads(socket.sent[-1])


@pytest.fixture
def chats(store: DocumentStore, inline_images: ImageService) -> ChatService:
    return ChatService(store, inline_images)


@pytest.mark.asyncio
async def test_first_connection_opens_one_subscription(chats: ChatService, store: DocumentStore) -> None:
    """Test that several sockets on one chat share a single subscription."""
    manager = ConnectionManager()
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    first, second = _fake_socket(), _fake_socket()

    await manager.connect(chat_id, first, chats)
    await manager.connect(chat_id, second, chats)

    first.accept.assert_awaited_once()
    assert store.events.handler_count(("collection", messages_path(chat_id))) == 1
    assert _last_payload(first) == {"type": "messages", "messages": []}
    assert _last_payload(second) == {"type": "messages", "messages": []}


@pytest.mark.asyncio
async def test_new_message_is_broadcast_to_every_socket(chats: ChatService) -> None:
    """Test that a stored message pushes the full log to all connected sockets."""
    manager = ConnectionManager()
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    first, second = _fake_socket(), _fake_socket()
    await manager.connect(chat_id, first, chats)
    await manager.connect(chat_id, second, chats)

    await chats.send_message(chat_id, "helper-1", "Ready when you are")

    for socket in (first, second):
        payload = _last_payload(socket)
        assert [m["content"] for m in payload["messages"]] == ["Ready when you are"]
        assert payload["messages"][0]["senderId"] == "helper-1"


@pytest.mark.asyncio
async def test_last_disconnect_cancels_subscription(chats: ChatService, store: DocumentStore) -> None:
    """Test that the subscription lives until the last socket leaves."""
    manager = ConnectionManager()
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    topic = ("collection", messages_path(chat_id))
    first, second = _fake_socket(), _fake_socket()
    await manager.connect(chat_id, first, chats)
    await manager.connect(chat_id, second, chats)

    manager.disconnect(chat_id, first)
    assert store.events.handler_count(topic) == 1

    manager.disconnect(chat_id, second)
    assert store.events.handler_count(topic) == 0
    assert chat_id not in manager.active_connections
    assert chat_id not in manager.subscriptions


@pytest.mark.asyncio
async def test_simultaneous_connections_share_one_subscription(chats: ChatService, store: DocumentStore) -> None:
    """Test that sockets connecting at the same time open a single subscription."""
    manager = ConnectionManager()
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    topic = ("collection", messages_path(chat_id))
    first, second = _fake_socket(), _fake_socket()

    await asyncio.gather(manager.connect(chat_id, first, chats), manager.connect(chat_id, second, chats))
    assert store.events.handler_count(topic) == 1

    manager.disconnect(chat_id, first)
    manager.disconnect(chat_id, second)
    assert store.events.handler_count(topic) == 0


@pytest.mark.asyncio
async def test_failed_send_drops_socket_and_reaches_the_rest(chats: ChatService) -> None:
    """Test that a closed socket does not block delivery to the others."""
    manager = ConnectionManager()
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    closed, live = _fake_socket(), _fake_socket()
    await manager.connect(chat_id, closed, chats)
    await manager.connect(chat_id, live, chats)
    closed.send_text.side_effect = RuntimeError("Cannot call send once a close message has been sent.")

    await chats.send_message(chat_id, "creator-1", "Still there?")

    assert [m["content"] for m in _last_payload(live)["messages"]] == ["Still there?"]
    assert manager.active_connections[chat_id] == [live]


# WebSocket Endpoint


@pytest.mark.asyncio
async def test_websocket_closes_without_token(chats: ChatService) -> None:
    """Test that the chat WebSocket is closed with a policy violation when no token is sent."""
    socket = _fake_socket()
    socket.headers = {}
    socket.query_params = {}

    await chat_websocket_module.chat_websocket(socket, "some-chat", chats)

    socket.close.assert_awaited_once()
    assert socket.close.await_args.kwargs["code"] == status.WS_1008_POLICY_VIOLATION
    socket.accept.assert_not_awaited()


@pytest.mark.asyncio
async def test_websocket_closes_for_non_participant(chats: ChatService, make_token: Callable[[str], str]) -> None:
    """Test that authenticated users outside the chat are turned away."""
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    socket = _fake_socket()
    socket.headers = {"Authorization": f"Bearer {make_token('intruder')}"}
    socket.query_params = {}

    await chat_websocket_module.chat_websocket(socket, chat_id, chats)

    assert socket.close.await_args.kwargs["code"] == status.WS_1008_POLICY_VIOLATION
    socket.accept.assert_not_awaited()


@pytest.mark.asyncio
async def test_websocket_stores_messages_and_pushes_log(
    chats: ChatService, store: DocumentStore, make_token: Callable[[str], str]
) -> None:
    """Test the receive loop: invalid JSON is answered, content is stored and pushed back."""
    chat_id = await chats.create_chat("task-1", "creator-1", "helper-1")
    socket = _fake_socket()
    socket.headers = {}
    socket.query_params = {"token": make_token("helper-1")}
    socket.receive_text.side_effect = [
        "not json",
        json.dumps({"content": "Hello there"}),
        WebSocketDisconnect(code=1000),
    ]

    await chat_websocket_module.chat_websocket(socket, chat_id, chats)

    payloads = [json.loads(text) for text in socket.sent]
    assert payloads[0] == {"type": "messages", "messages": []}
    assert payloads[1] == {"error": "Invalid JSON format"}
    assert [m["content"] for m in payloads[2]["messages"]] == ["Hello there"]
    assert store.events.handler_count(("collection", messages_path(chat_id))) == 0
    assert chat_id not in chat_websocket_module.manager.subscriptions
