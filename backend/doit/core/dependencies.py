"""
backend/doit/core/dependencies.py

Composition Root and Authentication Dependencies

- Builds the shared document store, event bus, object storage and services
  from `settings`; services never read configuration themselves
- Verifies bearer tokens issued by the managed auth provider and exposes
  the caller's user id to routes and WebSocket endpoints
"""

import logging
from typing import Annotated

from fastapi import Depends, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from doit.applications.services import ApplicationService
from doit.core.config import settings
from doit.core.events import EventBus
from doit.core.exceptions import APIError
from doit.core.storage import build_object_storage
from doit.database.session import AsyncSessionLocal
from doit.database.store import DocumentStore
from doit.images.services import ImageService
from doit.messaging.services import ChatService
from doit.reviews.services import ReviewService
from doit.search.services import SearchService
from doit.tasks.services import TaskService
from doit.users.services import UserService

# ---------------------------------------------------
# Logger Configuration
# ---------------------------------------------------
logger = logging.getLogger(__name__)

# ---------------------------------------------------
# Shared Infrastructure
# ---------------------------------------------------
event_bus = EventBus()
document_store = DocumentStore(AsyncSessionLocal, event_bus, settings.MAX_DOCUMENT_BYTES)
object_storage = build_object_storage(settings)

bearer_scheme = HTTPBearer(auto_error=False)


def get_store() -> DocumentStore:
    return document_store


def get_image_service() -> ImageService:
    return ImageService(
        use_object_storage=settings.USE_OBJECT_STORAGE,
        storage=object_storage,
        safety_margin_bytes=settings.INLINE_IMAGE_SAFETY_MARGIN_BYTES,
    )


StoreDep = Annotated[DocumentStore, Depends(get_store)]
ImagesDep = Annotated[ImageService, Depends(get_image_service)]


# ---------------------------------------------------
# Service Providers
# ---------------------------------------------------
def get_user_service(store: StoreDep, images: ImagesDep) -> UserService:
    return UserService(store, images)


def get_task_service(store: StoreDep, images: ImagesDep) -> TaskService:
    return TaskService(store, images)


def get_application_service(store: StoreDep, images: ImagesDep) -> ApplicationService:
    return ApplicationService(store, ChatService(store, images))


def get_review_service(store: StoreDep) -> ReviewService:
    return ReviewService(store)


def get_chat_service(store: StoreDep, images: ImagesDep) -> ChatService:
    return ChatService(store, images)


def get_search_service(store: StoreDep) -> SearchService:
    return SearchService(store)


# ---------------------------------------------------
# Authentication Functions
# ---------------------------------------------------
def decode_user_id(token: str) -> str:
    """
    Verifies a bearer token and returns its subject.

    Raises:
        ValueError: If the token is invalid, expired or has no subject.
    """
    try:
        payload = jwt.decode(token, settings.AUTH_SECRET_KEY, algorithms=[settings.AUTH_ALGORITHM])
    except JWTError as e:
        raise ValueError(str(e)) from e
    subject = payload.get("sub") or payload.get("user_id")
    if not subject:
        raise ValueError("Token has no subject")
    return str(subject)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> str:
    """
    Authenticate the caller from the Authorization header.

    Raises:
        APIError: 401 Unauthorized if the token is missing or invalid.
    """
    if credentials is None:
        logger.debug("[AUTH] No bearer token in Authorization header.")
        raise APIError(
            status.HTTP_401_UNAUTHORIZED,
            "Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = decode_user_id(credentials.credentials)
    except ValueError as e:
        logger.warning(f"[AUTH] Token verification failed: {e}")
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Could not validate credentials")

    logger.debug(f"[AUTH] User {user_id} authenticated.")
    return user_id


async def get_optional_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> str | None:
    """Like get_current_user_id, but anonymous callers get None."""
    if credentials is None:
        return None
    try:
        return decode_user_id(credentials.credentials)
    except ValueError as e:
        logger.warning(f"[AUTH] Ignoring invalid token on optional route: {e}")
        return None


async def get_user_id_from_ws(websocket: WebSocket) -> str | None:
    """
    Authenticate a WebSocket connection from the Authorization header or a
    `token` query parameter. Closes the socket and returns None on failure.
    """
    header = websocket.headers.get("Authorization")
    token = header.replace("Bearer ", "") if header and header.startswith("Bearer ") else None
    token = token or websocket.query_params.get("token")

    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication token missing.")
        return None

    try:
        return decode_user_id(token)
    except ValueError as e:
        logger.warning(f"[AUTH] WebSocket token verification failed: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication failed.")
        return None


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
OptionalUserDep = Annotated[str | None, Depends(get_optional_user_id)]
