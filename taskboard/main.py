import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.cache.layer import cache_layer
from taskboard.core.config import get_settings
from taskboard.core.exceptions import register_exception_handlers
from taskboard.core.logging_config import configure_logging
from taskboard.core.responses import utc_now
from taskboard.database import create_db_and_tables, engine, get_db, ping_database
from taskboard.routers import cache, posts, tasks, users

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    if settings.create_tables:
        await create_db_and_tables()
    await cache_layer.init_cache()
    logger.info("Taskboard API started", port=settings.port, cache=cache_layer.backend_name)
    yield
    await cache_layer.close()
    await engine.dispose()
    logger.info("Taskboard API stopped")


app = FastAPI(
    title="Taskboard API",
    description="Users and tasks management API with an optional Redis cache",
    swagger_ui_parameters={"displayRequestDuration": True},
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


# Include routers
for module in (users, tasks, posts):
    app.include_router(module.router, prefix="/api")
app.include_router(cache.router, prefix="/api")
app.include_router(cache.redis_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "message": "Welcome to Taskboard API",
        "docs": "/docs",
        "version": VERSION,
        "endpoints": {"health": "/health", "api": "/api"},
    }


@app.get("/api")
async def api_info():
    return {
        "message": "Taskboard API",
        "version": VERSION,
        "endpoints": {
            "users": {
                "GET /api/users": "Get all users",
                "GET /api/users/:id": "Get user by ID",
                "POST /api/users": "Create new user",
                "PUT /api/users/:id": "Update user",
                "DELETE /api/users/:id": "Delete user",
            },
            "tasks": {
                "GET /api/tasks": "Get all tasks (?completed=true|false)",
                "GET /api/tasks/:id": "Get task by ID",
                "POST /api/tasks": "Create new task",
                "PUT /api/tasks/:id": "Update task",
                "DELETE /api/tasks/:id": "Delete task",
            },
            "posts": {
                "GET /api/posts": "Get all posts (?status=&category=&author=)",
                "POST /api/posts": "Create new post",
                "GET|PUT|DELETE /api/posts/:id": "Read, update or delete a post",
                "POST /api/posts/:id/like": "Like a post",
                "DELETE /api/posts/:id/like/:userId": "Remove a like",
                "POST /api/posts/:id/comments": "Comment on a post",
                "POST /api/posts/:id/views": "Record a view",
            },
            "cache": {
                "GET /api/cache": "Cache stats",
                "GET|POST|DELETE /api/cache/:key": "Read, write or delete a key",
                "GET /api/redis/ping": "Ping the cache backend",
                "GET /api/redis/keys?pattern=": "List keys matching a glob pattern",
                "DELETE /api/redis/flush": "Remove every key",
            },
        },
    }


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    database_connected = await ping_database(db)
    cache_health = await cache_layer.health()

    if not database_connected:
        overall = "Error"
    elif cache_health["status"] == "Disconnected":
        overall = "Partial"
    else:
        overall = "OK"

    return {
        "status": overall,
        "timestamp": utc_now().isoformat(),
        "services": {
            "server": "Connected",
            "database": {
                "status": "Connected" if database_connected else "Disconnected",
                "connected": database_connected,
            },
            "cache": cache_health,
        },
    }
