"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("GIGS_DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from gig_service.db import Base
from gig_service.ledger import PaymentLedger
from gig_service.lifecycle import GigLifecycle
from gig_service.models import Gig, GigOutbox, GigStatus, Payment, PaymentStatus, User
from gig_service.processor import IntentSnapshot


class FakeProcessor:
    """In-memory stand-in for the payment processor."""

    def __init__(self):
        self.fail_on = set()
        self.already_canceled = set()
        self.retrieved = []
        self.cancelled = []
        self.holds = []

    async def retrieve(self, intent_id):
        self.retrieved.append(intent_id)
        status = "canceled" if intent_id in self.already_canceled else "requires_capture"
        return IntentSnapshot(id=intent_id, status=status, amount=0)

    async def cancel(self, intent_id):
        if intent_id in self.fail_on:
            raise RuntimeError(f"No such payment_intent: '{intent_id}'")
        self.cancelled.append(intent_id)
        return IntentSnapshot(id=intent_id, status="canceled", amount=0)

    async def create_hold(self, *, amount, currency, customer_id, payment_method_id, description, metadata):
        self.holds.append({
            "amount": amount,
            "currency": currency,
            "customer_id": customer_id,
            "description": description,
            "metadata": dict(metadata),
        })
        return IntentSnapshot(
            id=f"pi_hold_{len(self.holds)}",
            status="requires_capture",
            amount=amount,
            latest_charge=f"ch_hold_{len(self.holds)}",
        )


class Seeder:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def user(self, uid, full_name=None):
        async with self._session_factory() as session:
            user = User(id=f"{uid}-internal-id", firebase_uid=uid, full_name=full_name or uid.title())
            session.add(user)
            await session.commit()
            return user

    async def gig(
        self,
        gig_id,
        buyer,
        worker=None,
        status=GigStatus.PENDING_WORKER_ACCEPTANCE,
        expires_in=timedelta(days=1),
        **fields,
    ):
        now = datetime.now(timezone.utc)
        start = fields.pop("start_time", now + timedelta(days=2))
        async with self._session_factory() as session:
            gig = Gig(
                id=gig_id,
                buyer_user_id=buyer.id,
                worker_user_id=worker.id if worker else None,
                title=fields.pop("title", "Bartender"),
                start_time=start,
                end_time=fields.pop("end_time", start + timedelta(hours=4)),
                expires_at=None if expires_in is None else now + expires_in,
                agreed_rate=fields.pop("agreed_rate", Decimal("15.00")),
                total_agreed_price=fields.pop("total_agreed_price", Decimal("60.00")),
                status=status,
                **fields,
            )
            session.add(gig)
            await session.commit()
            return gig

    async def payment(self, gig, payer, intent_id, status=PaymentStatus.PENDING, amount=Decimal("6000")):
        async with self._session_factory() as session:
            payment = Payment(
                gig_id=gig.id,
                payer_user_id=payer.id,
                receiver_user_id=gig.worker_user_id,
                stripe_payment_intent_id=intent_id,
                amount_gross=amount,
                able_fee_amount=Decimal("390"),
                amount_net_to_worker=amount - Decimal("390"),
                status=status,
            )
            session.add(payment)
            await session.commit()
            return payment

    async def reload_gig(self, gig_id):
        async with self._session_factory() as session:
            return await session.get(Gig, gig_id)

    async def payments(self, gig_id):
        async with self._session_factory() as session:
            result = await session.execute(select(Payment).where(Payment.gig_id == gig_id))
            return list(result.scalars().all())

    async def outbox(self):
        async with self._session_factory() as session:
            result = await session.execute(select(GigOutbox))
            return list(result.scalars().all())


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def ledger(session_factory, processor):
    return PaymentLedger(session_factory, processor, fee_percent=0.065, currency="gbp")


@pytest.fixture
def spy_ledger(ledger):
    """Ledger whose cancel_related_payments is observable but still runs."""
    ledger.cancel_related_payments = AsyncMock(wraps=ledger.cancel_related_payments)
    return ledger


@pytest.fixture
def lifecycle(session_factory, spy_ledger):
    return GigLifecycle(session_factory, spy_ledger)
