import asyncio
import logging
from typing import List
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import uvicorn

from gig_service import queries, schemas, workers
from gig_service.config import settings
from gig_service.db import engine, Base, AsyncSessionLocal, get_session
from gig_service.errors import GigServiceError
from gig_service.ledger import PaymentLedger
from gig_service.lifecycle import GigLifecycle
from gig_service.messaging import init_rabbit, close_rabbit
from gig_service.models import Role
from gig_service.processor import StripeProcessor

logger = logging.getLogger(__name__)
app = FastAPI(title="Gig Service")

@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await init_rabbit()

    app.state.processor = StripeProcessor.from_settings(settings)
    app.state.outbox_task = asyncio.create_task(workers.outbox_publisher(AsyncSessionLocal))

@app.on_event("shutdown")
async def shutdown_event():
    app.state.outbox_task.cancel()
    await close_rabbit()


def get_ledger(request: Request) -> PaymentLedger:
    return PaymentLedger(
        AsyncSessionLocal,
        request.app.state.processor,
        fee_percent=settings.PLATFORM_FEE_PERCENT,
        currency=settings.DEFAULT_CURRENCY,
    )

def get_lifecycle(ledger: PaymentLedger = Depends(get_ledger)) -> GigLifecycle:
    return GigLifecycle(AsyncSessionLocal, ledger)

def _respond(result: schemas.OfferResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.model_dump(exclude_none=True))


@app.post("/gigs/{gig_id}/accept", response_model=schemas.OfferResult)
async def accept_offer(
    gig_id: str,
    req: schemas.OfferActionRequest,
    lifecycle: GigLifecycle = Depends(get_lifecycle)
):
    return _respond(await lifecycle.accept_offer(gig_id, req.user_uid))

@app.post("/gigs/{gig_id}/decline", response_model=schemas.OfferResult)
async def decline_offer(
    gig_id: str,
    req: schemas.OfferActionRequest,
    lifecycle: GigLifecycle = Depends(get_lifecycle)
):
    return _respond(await lifecycle.decline_offer(gig_id, req.user_uid))

@app.post("/gigs/{gig_id}/status", response_model=schemas.OfferResult)
async def update_offer_status(
    gig_id: str,
    req: schemas.OfferStatusUpdateRequest,
    lifecycle: GigLifecycle = Depends(get_lifecycle)
):
    return _respond(await lifecycle.update_offer_status(gig_id, req.user_uid, req.role, req.action))

@app.post("/gigs/{gig_id}/payments/cancel", status_code=200)
async def cancel_payments(
    gig_id: str,
    ledger: PaymentLedger = Depends(get_ledger)
):
    try:
        await ledger.cancel_related_payments(gig_id)
    except GigServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"status": "refunded"}

@app.post("/gigs/{gig_id}/payments/hold", response_model=schemas.PaymentRead)
async def hold_payment(
    gig_id: str,
    req: schemas.HoldRequest,
    ledger: PaymentLedger = Depends(get_ledger)
):
    payment = await ledger.hold_gig_amount(
        gig_id,
        req.payer_user_id,
        req.receiver_user_id,
        req.amount,
        req.customer_id,
        payment_method_id=req.payment_method_id,
        destination_account_id=req.destination_account_id,
        currency=req.currency,
    )
    return schemas.PaymentRead.model_validate(payment)

@app.get("/gigs/{gig_id}/payments", response_model=List[schemas.PaymentRead])
async def list_payments(
    gig_id: str,
    session: AsyncSession = Depends(get_session)
):
    return await queries.get_gig_payments(gig_id, session)

@app.get("/gigs/{gig_id}", response_model=schemas.GigRead)
async def get_gig(
    gig_id: str,
    user_uid: str,
    role: Role,
    session: AsyncSession = Depends(get_session)
):
    try:
        return await queries.get_gig_for_role(gig_id, user_uid, role, session)
    except GigServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

@app.get("/workers/{user_uid}/offers", response_model=schemas.WorkerOffersResponse)
async def get_worker_offers(
    user_uid: str,
    session: AsyncSession = Depends(get_session)
):
    try:
        response = await queries.get_worker_offers(user_uid, session)
    except GigServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return response


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("gig_service.main:app", host="0.0.0.0", port=8000)
