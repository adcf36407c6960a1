from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gig_service import crud
from gig_service.errors import NotFound, UserNotFound
from gig_service.models import Gig, Role
from gig_service.schemas import GigRead, PaymentRead, WorkerOffer, WorkerOffersResponse, parse_location
from gig_service.transitions import display_status


def location_snippet(gig: Gig) -> str:
    location = parse_location(gig.address_json) or parse_location(gig.exact_location)
    return location.snippet if location else "Location not specified"


def to_gig_read(gig: Gig) -> GigRead:
    return GigRead(
        id=gig.id,
        buyer_user_id=gig.buyer_user_id,
        worker_user_id=gig.worker_user_id,
        title=gig.title,
        start_time=gig.start_time,
        end_time=gig.end_time,
        expires_at=gig.expires_at,
        agreed_rate=gig.agreed_rate,
        total_agreed_price=gig.total_agreed_price,
        tip_amount=gig.tip_amount,
        status=gig.status,
        display_status=display_status(gig.status),
        location=parse_location(gig.address_json) or parse_location(gig.exact_location),
    )


def to_worker_offer(gig: Gig) -> WorkerOffer:
    hours = (gig.end_time - gig.start_time).total_seconds() / 3600
    estimated_hours = round(hours, 2)
    rate = float(gig.agreed_rate)
    return WorkerOffer(
        id=gig.id,
        role=gig.title,
        location_snippet=location_snippet(gig),
        start_time=gig.start_time,
        end_time=gig.end_time,
        hourly_rate=rate,
        estimated_hours=estimated_hours,
        total_pay=round(rate * estimated_hours, 2),
        expires_at=gig.expires_at,
        status=gig.status,
        gig_description=gig.full_description,
        notes_for_worker=gig.notes_for_worker,
    )


async def get_worker_offers(
    worker_uid: str,
    session: AsyncSession,
    now: Optional[datetime] = None,
) -> WorkerOffersResponse:
    """Live offers directed at the worker plus the gigs they already hold."""
    user = await crud.get_user_by_uid(worker_uid, session)
    if user is None:
        raise UserNotFound("User not found")
    now = now or datetime.now(timezone.utc)
    offers = await crud.get_pending_offers_for_worker(user.id, session, now)
    accepted = await crud.get_active_gigs_for_worker(user.id, session, now)
    return WorkerOffersResponse(
        offers=[to_worker_offer(gig) for gig in offers],
        accepted_gigs=[to_worker_offer(gig) for gig in accepted],
    )


async def get_gig_for_role(
    gig_id: str,
    user_uid: str,
    role: Role,
    session: AsyncSession,
) -> GigRead:
    user = await crud.get_user_by_uid(user_uid, session)
    if user is None:
        raise UserNotFound("User not found")
    gig = await crud.fetch_gig_for_role(gig_id, user.id, role, session)
    if gig is None:
        raise NotFound("Gig not found")
    return to_gig_read(gig)


async def get_gig_payments(gig_id: str, session: AsyncSession) -> List[PaymentRead]:
    payments = await crud.get_payments_for_gig(gig_id, session)
    return [PaymentRead.model_validate(p) for p in payments]
