"""
main.py

Application entrypoint for the DoIt API.
- Initializes structured logging
- Creates the document table on startup
- Sets up FastAPI application and middlewares
- Registers all API routers
- Integrates rate limiting via SlowAPI
- Adds common security headers
- Configures CORS
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from doit.applications.routes import router as applications_router
from doit.core.config import settings
from doit.core.limiter import limiter
from doit.core.logging import init_logging
from doit.core.middleware import LoggingMiddleware
from doit.database.session import init_models
from doit.messaging.routes import router as chats_router
from doit.messaging.websocket import router as chats_websocket_router
from doit.reviews.routes import router as reviews_router
from doit.search.routes import router as search_router
from doit.tasks.routes import router as tasks_router
from doit.users.routes import router as users_router

init_logging()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await init_models()
    yield


# -----------------------------
# FastAPI App Initialization
# -----------------------------
app = FastAPI(title=f"{settings.APP_NAME} API", debug=settings.DEBUG, lifespan=lifespan)

# -----------------------------
# Middleware Configuration
# -----------------------------
app.state.limiter = limiter


async def rate_limit_exceeded_handler(request: Request, exc: Exception) -> Response:
    return _rate_limit_exceeded_handler(request, exc)  # type: ignore[arg-type]


app.add_exception_handler(429, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(LoggingMiddleware)


# -----------------------------
# Security Headers Middleware
# -----------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add common security headers to responses.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# -----------------------------
# CORSMiddleware Configuration
# -----------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# API Router Registration
# -----------------------------
app.include_router(users_router)
app.include_router(tasks_router)
app.include_router(applications_router)
app.include_router(reviews_router)
app.include_router(chats_router)
app.include_router(chats_websocket_router)
app.include_router(search_router)


# -----------------------------
# Root Endpoint
# -----------------------------
@app.get("/")
async def home() -> dict[str, str]:
    return {"name": settings.APP_NAME, "status": "ok"}
