import asyncio
import contextlib

from fastapi import FastAPI
from loguru import logger

from storebot.api.routes import api_router
from storebot.container import build_container
from storebot.core.config import settings
from storebot.core.logging_config import setup_logging
from storebot.infrastructure.cache.redis_client import close_redis_client

app = FastAPI(title=settings.APP_NAME)


async def session_cleanup_loop(app: FastAPI) -> None:
    """Periodic sweep of idle sessions (and their router locks)."""
    container = app.state.container
    while True:
        await asyncio.sleep(settings.SESSION_CLEANUP_INTERVAL)
        try:
            removed = await container.sessions.cleanup_expired()
            container.locks.discard(removed)
        except Exception:
            logger.exception("Session cleanup failed")


@app.on_event("startup")
async def startup():
    setup_logging()
    app.state.container = await build_container(settings)
    app.state.cleanup_task = asyncio.create_task(session_cleanup_loop(app))
    logger.success("{} started (env={})", settings.APP_NAME, settings.ENV)


@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "cleanup_task", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await close_redis_client()


app.include_router(api_router)
