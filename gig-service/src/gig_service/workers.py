import asyncio
import json
import logging

from aio_pika import Message
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_service.config import settings
from gig_service.messaging import get_channel, declare_gig_exchange, QUEUE_GIG_NOTIFICATIONS
from gig_service.models import GigOutbox

logger = logging.getLogger("gigs.workers")

async def publish_pending_events(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        stmt = (
            select(GigOutbox)
            .where(GigOutbox.published_at.is_(None))
            .order_by(GigOutbox.created_at)
        )
        events = (await session.execute(stmt)).scalars().all()
        logger.debug("[Gigs] Pending outbox events: %d", len(events))
        if not events:
            return 0

        channel = await get_channel()
        exchange = await declare_gig_exchange(channel)

        for ev in events:
            body = {"event_type": ev.event_type, "gig_id": ev.aggregate_id, **ev.payload}
            logger.info("[Gigs] Publishing %s for gig %s", ev.event_type, ev.aggregate_id)
            await exchange.publish(
                Message(body=json.dumps(body).encode(), content_type="application/json"),
                routing_key=QUEUE_GIG_NOTIFICATIONS,
            )
            ev.published_at = func.now()
            session.add(ev)

        await session.commit()
        logger.info("[Gigs] Outbox publish commit complete (%d events)", len(events))
        return len(events)

async def outbox_publisher(session_factory: async_sessionmaker[AsyncSession]):
    while True:
        try:
            await publish_pending_events(session_factory)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("[Gigs] Outbox publish failed: %s", e)
        await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
