from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gig_service.models import Gig, GigOutbox, GigStatus, Payment, PaymentStatus, Role, User
from gig_service.transitions import OWNER_COLUMN


async def get_user_by_uid(
    firebase_uid: str,
    session: AsyncSession
) -> User | None:
    result = await session.execute(select(User).where(User.firebase_uid == firebase_uid))
    return result.scalar_one_or_none()

async def get_gig_for_update(
    gig_id: str,
    session: AsyncSession
) -> Gig | None:
    """Loads the gig and locks its row until the surrounding transaction ends."""
    stmt = select(Gig).where(Gig.id == gig_id).with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()

async def transition_gig(
    gig_id: str,
    from_statuses: Iterable[GigStatus],
    to_status: GigStatus,
    session: AsyncSession,
    *,
    assign_worker_id: Optional[str] = None,
    owner_role: Optional[Role] = None,
    owner_id: Optional[str] = None,
    require_open_or_worker: Optional[str] = None,
    require_unassigned: bool = False,
) -> int:
    """Compare-and-swap status update. Returns the number of rows written.

    The row only changes when its current status is one of ``from_statuses``
    and every ownership filter passed in still holds.
    """
    conditions = [Gig.id == gig_id, Gig.status.in_(list(from_statuses))]
    if owner_role is not None:
        conditions.append(OWNER_COLUMN[owner_role] == owner_id)
    if require_unassigned:
        conditions.append(Gig.worker_user_id.is_(None))
    if to_status == GigStatus.ACCEPTED and assign_worker_id is None:
        # accepted gigs always carry a worker
        conditions.append(Gig.worker_user_id.is_not(None))
    if require_open_or_worker is not None:
        conditions.append(or_(
            Gig.worker_user_id.is_(None),
            Gig.worker_user_id == require_open_or_worker,
        ))

    values = {"status": to_status, "updated_at": func.now()}
    if assign_worker_id is not None:
        values["worker_user_id"] = assign_worker_id

    result = await session.execute(
        update(Gig)
        .where(and_(*conditions))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount

async def add_outbox_event(
    aggregate_id: str,
    event_type: str,
    payload: dict,
    session: AsyncSession
) -> GigOutbox:
    rec = GigOutbox(aggregate_id=aggregate_id, event_type=event_type, payload=payload)
    session.add(rec)
    await session.flush()
    return rec

async def get_payments_for_gig(
    gig_id: str,
    session: AsyncSession
) -> List[Payment]:
    result = await session.execute(
        select(Payment).where(Payment.gig_id == gig_id).order_by(Payment.created_at, Payment.id)
    )
    return list(result.scalars().all())

async def mark_payments_refunded(
    payment_ids: Sequence[str],
    session: AsyncSession
) -> int:
    # PENDING -> REFUNDED only; settled rows are never moved backwards
    result = await session.execute(
        update(Payment)
        .where(Payment.id.in_(list(payment_ids)), Payment.status == PaymentStatus.PENDING)
        .values(status=PaymentStatus.REFUNDED, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount

async def create_payment(
    gig_id: str,
    payer_user_id: str,
    receiver_user_id: Optional[str],
    amount_gross: Decimal,
    fee_amount: Decimal,
    net_amount: Decimal,
    session: AsyncSession,
    *,
    payment_intent_id: Optional[str] = None,
    charge_id: Optional[str] = None,
    internal_notes: Optional[str] = None,
) -> Payment:
    payment = Payment(
        gig_id=gig_id,
        stripe_payment_intent_id=payment_intent_id,
        stripe_charge_id=charge_id,
        payer_user_id=payer_user_id,
        receiver_user_id=receiver_user_id,
        amount_gross=amount_gross,
        able_fee_amount=fee_amount,
        amount_net_to_worker=net_amount,
        stripe_fee_amount=Decimal("0"),
        internal_notes=internal_notes,
        status=PaymentStatus.PENDING,
    )
    session.add(payment)
    await session.commit()
    await session.refresh(payment)
    return payment

async def fetch_gig_for_role(
    gig_id: str,
    user_id: str,
    role: Role,
    session: AsyncSession
) -> Gig | None:
    """Worker sees gigs assigned to them and open-pool offers; buyer sees own gigs."""
    if role == Role.WORKER:
        condition = and_(
            Gig.id == gig_id,
            or_(
                Gig.worker_user_id == user_id,
                and_(
                    Gig.status == GigStatus.PENDING_WORKER_ACCEPTANCE,
                    Gig.worker_user_id.is_(None),
                ),
            ),
        )
    else:
        condition = and_(Gig.id == gig_id, OWNER_COLUMN[role] == user_id)
    result = await session.execute(select(Gig).where(condition))
    return result.scalar_one_or_none()

async def get_pending_offers_for_worker(
    worker_id: str,
    session: AsyncSession,
    now: Optional[datetime] = None,
) -> List[Gig]:
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(Gig)
        .where(
            Gig.status == GigStatus.PENDING_WORKER_ACCEPTANCE,
            Gig.worker_user_id == worker_id,
            Gig.expires_at.is_not(None),
            Gig.expires_at > now,
        )
        .order_by(Gig.start_time)
    )
    return list(result.scalars().all())

ACTIVE_WORKER_STATUSES = (
    GigStatus.ACCEPTED,
    GigStatus.IN_PROGRESS,
    GigStatus.PENDING_COMPLETION_WORKER,
    GigStatus.PENDING_COMPLETION_BUYER,
)

async def get_active_gigs_for_worker(
    worker_id: str,
    session: AsyncSession,
    now: Optional[datetime] = None,
) -> List[Gig]:
    """Gigs the worker has taken on that have not ended yet."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(Gig)
        .where(
            Gig.worker_user_id == worker_id,
            Gig.status.in_(ACTIVE_WORKER_STATUSES),
            Gig.end_time > now,
        )
        .order_by(Gig.start_time)
    )
    return list(result.scalars().all())
