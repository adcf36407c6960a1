import asyncio
import logging
from aio_pika import connect_robust, ExchangeType
from aio_pika.abc import AbstractRobustConnection, AbstractRobustChannel, AbstractExchange
from gig_service.config import settings

logger = logging.getLogger("gigs.messaging")

GIG_EXCHANGE            = "gig_exchange"
QUEUE_GIG_NOTIFICATIONS = "gig_notifications"

rabbit_connection: AbstractRobustConnection | None = None
rabbit_channel:    AbstractRobustChannel     | None = None

async def init_rabbit(retry_attempts: int = 5, retry_delay: int = 2) -> None:
    global rabbit_connection, rabbit_channel

    for attempt in range(1, retry_attempts + 1):
        try:
            logger.info("[Gigs] Connecting to RabbitMQ (attempt %d/%d)", attempt, retry_attempts)
            rabbit_connection = await connect_robust(settings.rabbit_url)
            rabbit_channel    = await rabbit_connection.channel()

            exchange = await declare_gig_exchange(rabbit_channel)
            queue = await rabbit_channel.declare_queue(
                QUEUE_GIG_NOTIFICATIONS, durable=True
            )
            await queue.bind(exchange, QUEUE_GIG_NOTIFICATIONS)

            logger.info("[Gigs] RabbitMQ setup complete")
            return
        except Exception as e:
            logger.error("[Gigs] RabbitMQ init failed: %s", e)
            if attempt < retry_attempts:
                await asyncio.sleep(retry_delay)
            else:
                logger.critical("[Gigs] Could not connect to RabbitMQ, giving up")
                raise

async def declare_gig_exchange(channel: AbstractRobustChannel) -> AbstractExchange:
    return await channel.declare_exchange(GIG_EXCHANGE, ExchangeType.DIRECT, durable=True)

async def get_channel() -> AbstractRobustChannel:
    if rabbit_channel is None:
        await init_rabbit()
    return rabbit_channel

async def close_rabbit() -> None:
    global rabbit_connection, rabbit_channel
    if rabbit_connection:
        await rabbit_connection.close()
        rabbit_connection = None
        rabbit_channel = None
        logger.info("[Gigs] RabbitMQ connection closed")
