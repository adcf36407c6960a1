"""Payment ledger: the Payment rows held against a gig.

Rows are created as PENDING when the buyer's card is put on hold and only
ever move forward, to COMPLETED on settlement or REFUNDED on cancellation.
Cancellation is all-or-nothing on the ledger side: the rows are only marked
REFUNDED once every processor-side cancel has succeeded. Failed payment ids
are logged and carried on the raised ``ProcessorFailure`` so the gig can be
reconciled by hand or cancelled again; intents that the processor already
reports as ``canceled`` are skipped on the next run.
"""

import asyncio
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_service import crud
from gig_service.errors import NoPaymentsFound, ProcessorFailure
from gig_service.models import Payment, PaymentStatus
from gig_service.processor import PaymentProcessor

logger = logging.getLogger("gigs.ledger")

CANCELED_INTENT_STATUS = "canceled"


def calculate_payment_split(amount: int, fee_percent: float) -> Tuple[int, int]:
    """Split a gross amount in minor units into (platform fee, net to worker)."""
    fee = int((Decimal(amount) * Decimal(str(fee_percent))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return fee, amount - fee


class PaymentLedger:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: PaymentProcessor,
        fee_percent: float = 0.065,
        currency: str = "gbp",
    ):
        self._session_factory = session_factory
        self._processor = processor
        self._fee_percent = fee_percent
        self._currency = currency

    async def cancel_related_payments(self, gig_id: str) -> None:
        # no transaction is held open across the processor calls
        async with self._session_factory() as session:
            payments = await crud.get_payments_for_gig(gig_id, session)
        if not payments:
            raise NoPaymentsFound(gig_id)

        # settled rows keep their captured intent; only holds are released
        targets = [
            p for p in payments
            if p.status == PaymentStatus.PENDING and p.stripe_payment_intent_id
        ]
        logger.info(
            "[Ledger] Cancelling %d payment intent(s) for gig %s (%d ledger rows)",
            len(targets), gig_id, len(payments),
        )
        outcomes = await asyncio.gather(
            *(self._cancel_intent(p.stripe_payment_intent_id) for p in targets),
            return_exceptions=True,
        )

        failed = []
        for payment, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "[Ledger] Cancel failed for payment %s (intent %s) on gig %s: %s",
                    payment.id, payment.stripe_payment_intent_id, gig_id, outcome,
                )
                failed.append((payment, outcome))
        if failed:
            raise ProcessorFailure(
                gig_id,
                "; ".join(str(exc) for _, exc in failed),
                failed_payment_ids=[p.id for p, _ in failed],
            ) from failed[0][1]

        async with self._session_factory() as session:
            updated = await crud.mark_payments_refunded([p.id for p in payments], session)
            await session.commit()
        logger.info("[Ledger] Marked %d payment(s) REFUNDED for gig %s", updated, gig_id)

    async def _cancel_intent(self, intent_id: str) -> None:
        intent = await self._processor.retrieve(intent_id)
        if intent.status == CANCELED_INTENT_STATUS:
            logger.info("[Ledger] Intent %s already cancelled, skipping", intent_id)
            return
        await self._processor.cancel(intent_id)

    async def hold_gig_amount(
        self,
        gig_id: str,
        payer_user_id: str,
        receiver_user_id: Optional[str],
        amount: int,
        customer_id: str,
        *,
        payment_method_id: Optional[str] = None,
        destination_account_id: Optional[str] = None,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        internal_notes: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Payment:
        """Puts ``amount`` (minor units) on hold and records a PENDING row."""
        intent = await self._processor.create_hold(
            amount=amount,
            currency=currency or self._currency,
            customer_id=customer_id,
            payment_method_id=payment_method_id,
            description=description or f"Initial hold for Gig: {gig_id} to account: {destination_account_id}",
            metadata={"gigId": gig_id, "type": "initial_gig_hold", **(metadata or {})},
        )
        logger.info("[Ledger] Hold intent %s created for gig %s, status %s", intent.id, gig_id, intent.status)

        fee, net = calculate_payment_split(intent.amount or amount, self._fee_percent)
        async with self._session_factory() as session:
            return await crud.create_payment(
                gig_id,
                payer_user_id,
                receiver_user_id,
                Decimal(amount),
                Decimal(fee),
                Decimal(net),
                session,
                payment_intent_id=intent.id,
                charge_id=intent.latest_charge,
                internal_notes=internal_notes,
            )
