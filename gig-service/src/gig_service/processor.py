import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

import stripe

from gig_service.config import Settings

logger = logging.getLogger("gigs.processor")


@dataclass(frozen=True)
class IntentSnapshot:
    id: str
    status: str
    amount: int
    latest_charge: Optional[str] = None


class PaymentProcessor(Protocol):
    async def retrieve(self, intent_id: str) -> IntentSnapshot: ...

    async def cancel(self, intent_id: str) -> IntentSnapshot: ...

    async def create_hold(
        self,
        *,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: Optional[str],
        description: str,
        metadata: Mapping[str, str],
    ) -> IntentSnapshot: ...


def _snapshot(intent) -> IntentSnapshot:
    charge = intent.get("latest_charge")
    if charge is not None and not isinstance(charge, str):
        charge = charge.get("id")
    return IntentSnapshot(
        id=intent["id"],
        status=intent["status"],
        amount=intent.get("amount") or 0,
        latest_charge=charge,
    )


class StripeProcessor:
    """Payment intents through Stripe's async API."""

    def __init__(self, client: stripe.StripeClient):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeProcessor":
        client = stripe.StripeClient(
            settings.STRIPE_SECRET_KEY,
            http_client=stripe.HTTPXClient(),
            max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
        )
        return cls(client)

    async def retrieve(self, intent_id: str) -> IntentSnapshot:
        intent = await self._client.v1.payment_intents.retrieve_async(intent_id)
        return _snapshot(intent)

    async def cancel(self, intent_id: str) -> IntentSnapshot:
        intent = await self._client.v1.payment_intents.cancel_async(intent_id)
        logger.info("[Processor] Cancelled payment intent %s, status %s", intent["id"], intent["status"])
        return _snapshot(intent)

    async def create_hold(
        self,
        *,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: Optional[str],
        description: str,
        metadata: Mapping[str, str],
    ) -> IntentSnapshot:
        params = {
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "capture_method": "manual",
            "confirm": True,
            "off_session": True,
            "description": description,
            "metadata": dict(metadata),
        }
        if payment_method_id:
            params["payment_method"] = payment_method_id
        intent = await self._client.v1.payment_intents.create_async(params=params)
        logger.info("[Processor] Created hold intent %s, status %s", intent["id"], intent["status"])
        return _snapshot(intent)
