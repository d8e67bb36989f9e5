"""
tests/conftest.py

Test fixtures for API integration and unit tests.
Includes a document store on a throwaway SQLite file, async clients,
signed bearer tokens, sample images and dependency overrides.
"""
import io
import os
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Settings are read at import time
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("USE_OBJECT_STORAGE", "false")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{project_root / 'test_doit.db'}")

# --- Imports ---
from collections.abc import AsyncGenerator, Callable, Generator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from main import app
from doit.core.config import settings
from doit.core.dependencies import get_image_service, get_store
from doit.core.events import EventBus
from doit.database.session import init_models
from doit.database.store import DocumentStore
from doit.images.services import ImageService
from doit.users.services import USERS


# --- Core Test Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def store(tmp_path: Path) -> AsyncGenerator[DocumentStore, None]:
    """Fixture for a document store on a fresh SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_models(bind=engine)
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    yield DocumentStore(session_factory, EventBus())
    await engine.dispose()


@pytest.fixture
def inline_images() -> ImageService:
    """Fixture for an image service using the inline data URI strategy."""
    return ImageService(use_object_storage=False)


@pytest.fixture(scope="session")
def transport() -> ASGITransport:
    """Fixture for ASGI transport."""
    return ASGITransport(app=app)


@pytest_asyncio.fixture(scope="function")
async def async_client(
    transport: ASGITransport, store: DocumentStore, inline_images: ImageService
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture for HTTP async client wired to the test store."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_image_service] = lambda: inline_images
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_store, None)
    app.dependency_overrides.pop(get_image_service, None)


# --- Authentication Fixtures ---


@pytest.fixture
def make_token() -> Callable[[str], str]:
    """Fixture returning a signer for bearer tokens with the given subject."""

    def _make(user_id: str) -> str:
        return jwt.encode({"sub": user_id}, settings.AUTH_SECRET_KEY, algorithm=settings.AUTH_ALGORITHM)

    return _make


@pytest.fixture
def auth_headers(make_token: Callable[[str], str]) -> Callable[[str], dict[str, str]]:
    """Fixture returning Authorization headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


# --- Fake Data Fixtures ---


@pytest_asyncio.fixture
async def creator(store: DocumentStore) -> str:
    """A task creator with an existing profile."""
    await store.set(
        USERS,
        "creator-1",
        {"uid": "creator-1", "displayName": "Carla", "photoURL": "https://img/carla.png", "rating": 4.5,
         "ratingCount": 2, "postedTasks": 0, "completedTasks": 0, "bookmarkedTasks": []},
    )
    return "creator-1"


@pytest_asyncio.fixture
async def helper(store: DocumentStore) -> str:
    """A helper with an existing profile."""
    await store.set(
        USERS,
        "helper-1",
        {"uid": "helper-1", "displayName": "Hugo", "photoURL": "", "rating": 4.0,
         "ratingCount": 3, "postedTasks": 0, "completedTasks": 0, "bookmarkedTasks": []},
    )
    return "helper-1"


def _image_bytes(size: tuple[int, int], fmt: str, noisy: bool = False, mode: str = "RGB") -> bytes:
    if noisy:
        image = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    else:
        image = Image.new(mode, size, (200, 80, 40, 128) if mode == "RGBA" else (200, 80, 40))
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def small_png() -> bytes:
    """A small flat PNG."""
    return _image_bytes((64, 48), "PNG")


@pytest.fixture
def transparent_png() -> bytes:
    """A small PNG with an alpha channel."""
    return _image_bytes((32, 32), "PNG", mode="RGBA")


@pytest.fixture
def noisy_jpeg() -> bytes:
    """A large random-noise JPEG that compresses poorly."""
    return _image_bytes((1600, 1200), "JPEG", noisy=True)


@pytest.fixture
def make_image() -> Generator[Callable[..., bytes], None, None]:
    """Fixture returning the raw image builder."""
    yield _image_bytes
