# storebot/infrastructure/queue/arq_settings.py

from arq.connections import RedisSettings
from loguru import logger

from storebot.core.config import settings
from storebot.core.logging_config import setup_logging
from storebot.infrastructure.queue.whatsapp_jobs import send_whatsapp_job


class WorkerSettings:
    """
    Used by:
        arq storebot.infrastructure.queue.arq_settings.WorkerSettings
    """

    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

    functions = [send_whatsapp_job]

    max_jobs = 100
    allow_abort_jobs = True

    @staticmethod
    async def on_startup(ctx):
        setup_logging()
        logger.info("ARQ worker starting up, Redis DSN={}", settings.REDIS_URL)

    @staticmethod
    async def on_shutdown(ctx):
        logger.info("ARQ worker shutting down")
