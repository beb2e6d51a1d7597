# storebot/infrastructure/queue/whatsapp_jobs.py

from arq.connections import ArqRedis
from loguru import logger

from storebot.infrastructure.external.whatsapp_client import send_whatsapp_text

MAX_WHATSAPP_RETRIES = 3


async def send_whatsapp_job(
    ctx: dict, to_number: str, text: str, attempt: int = 1
) -> bool:
    """
    Arq job: send a WhatsApp message, re-enqueueing on failure.
    Executed by the Arq worker, NOT by FastAPI directly.
    """
    logger.info(
        "Arq job send_whatsapp_job: to={} attempt={} text={!r}",
        to_number,
        attempt,
        text[:120],
    )

    try:
        await send_whatsapp_text(to_number, text)
        return True
    except Exception as e:
        logger.warning(
            "WhatsApp send failed to {} on attempt {}: {}", to_number, attempt, e
        )

    if attempt < MAX_WHATSAPP_RETRIES:
        redis: ArqRedis = ctx["redis"]
        await redis.enqueue_job("send_whatsapp_job", to_number, text, attempt + 1)
        logger.info(
            "Re-enqueued WhatsApp message for {} attempt {}", to_number, attempt + 1
        )
    else:
        # Delivery messages carry credentials; keep them out of the log
        logger.error(
            "Dropping WhatsApp message to {} after {} attempts", to_number, attempt
        )
    return False
