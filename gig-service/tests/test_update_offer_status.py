"""Tests for the generic buyer/worker status update."""

from datetime import timedelta

import pytest

from gig_service import crud
from gig_service.lifecycle import GIG_CANCELLED_BY_WORKER
from gig_service.models import GigStatus, OfferAction, PaymentStatus, Role


@pytest.mark.asyncio
async def test_worker_accepts_open_offer_and_is_assigned(lifecycle, seed):
    buyer = await seed.user("b1")
    await seed.user("u1")
    await seed.gig("g1", buyer, None)

    result = await lifecycle.update_offer_status("g1", "u1", "worker", "accept")

    assert result.success is True
    assert result.status_code == 200
    gig = await seed.reload_gig("g1")
    assert gig.status == GigStatus.ACCEPTED
    assert gig.worker_user_id == "u1-internal-id"


@pytest.mark.asyncio
async def test_worker_cannot_take_offer_directed_at_someone_else(lifecycle, seed):
    buyer = await seed.user("b1")
    other = await seed.user("u2")
    await seed.user("u1")
    await seed.gig("g1", buyer, other)

    result = await lifecycle.update_offer_status("g1", "u1", "worker", "accept")

    assert result.status_code == 404
    gig = await seed.reload_gig("g1")
    assert gig.worker_user_id == "u2-internal-id"
    assert gig.status == GigStatus.PENDING_WORKER_ACCEPTANCE


@pytest.mark.asyncio
async def test_buyer_cancel_refunds_holds(lifecycle, seed, spy_ledger, processor):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    gig = await seed.gig("g1", buyer, worker, status=GigStatus.ACCEPTED)
    await seed.payment(gig, buyer, "pi_1")

    result = await lifecycle.update_offer_status("g1", "b1", "buyer", "cancel")

    assert result.success is True
    assert (await seed.reload_gig("g1")).status == GigStatus.CANCELLED_BY_BUYER
    spy_ledger.cancel_related_payments.assert_awaited_once_with("g1")
    assert processor.cancelled == ["pi_1"]
    assert [p.status for p in await seed.payments("g1")] == [PaymentStatus.REFUNDED]
    # buyer cancellations do not notify through the outbox
    assert await seed.outbox() == []


@pytest.mark.asyncio
async def test_buyer_cannot_cancel_someone_elses_gig(lifecycle, seed, spy_ledger):
    owner = await seed.user("b1")
    await seed.user("b2")
    await seed.gig("g1", owner, None)

    result = await lifecycle.update_offer_status("g1", "b2", "buyer", "cancel")

    assert result.status_code == 404
    assert (await seed.reload_gig("g1")).status == GigStatus.PENDING_WORKER_ACCEPTANCE
    spy_ledger.cancel_related_payments.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_cancel_notifies_buyer(lifecycle, seed):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    gig = await seed.gig("g1", buyer, worker, status=GigStatus.ACCEPTED)
    await seed.payment(gig, buyer, "pi_1")

    result = await lifecycle.update_offer_status("g1", "u1", "worker", "cancel")

    assert result.success is True
    assert (await seed.reload_gig("g1")).status == GigStatus.CANCELLED_BY_WORKER
    events = await seed.outbox()
    assert [e.event_type for e in events] == [GIG_CANCELLED_BY_WORKER]
    assert events[0].payload["topic"] == buyer.id


@pytest.mark.asyncio
async def test_start_action_resolves_to_cancellation(lifecycle, seed, spy_ledger):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker, status=GigStatus.ACCEPTED)

    result = await lifecycle.update_offer_status("g1", "u1", "worker", "start")

    assert result.success is True
    assert (await seed.reload_gig("g1")).status == GigStatus.CANCELLED_BY_WORKER
    # only an explicit cancel releases the holds
    spy_ledger.cancel_related_payments.assert_not_awaited()


@pytest.mark.asyncio
async def test_buyer_complete_resolves_to_buyer_cancellation(lifecycle, seed):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker, status=GigStatus.IN_PROGRESS)

    result = await lifecycle.update_offer_status("g1", "b1", "buyer", "complete")

    assert result.success is True
    assert (await seed.reload_gig("g1")).status == GigStatus.CANCELLED_BY_BUYER


@pytest.mark.asyncio
async def test_worker_cancel_of_expired_gig_fails(lifecycle, seed):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker, status=GigStatus.ACCEPTED, expires_in=timedelta(hours=-1))

    result = await lifecycle.update_offer_status("g1", "u1", "worker", "cancel")

    assert result.status_code == 400
    assert result.error == "Gig has expired"
    assert (await seed.reload_gig("g1")).status == GigStatus.ACCEPTED


@pytest.mark.asyncio
async def test_paid_gig_cannot_be_cancelled(lifecycle, seed, spy_ledger):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker, status=GigStatus.PAID)

    result = await lifecycle.update_offer_status("g1", "b1", "buyer", "cancel")

    assert result.status_code == 400
    assert result.code == "INVALID_STATE"
    assert (await seed.reload_gig("g1")).status == GigStatus.PAID
    spy_ledger.cancel_related_payments.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(lifecycle, seed):
    buyer = await seed.user("b1")
    await seed.gig("g1", buyer, None)

    result = await lifecycle.update_offer_status("g1", "b1", "admin", "cancel")

    assert result.status_code == 400
    assert result.error == "Invalid action or role"


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(lifecycle, seed):
    buyer = await seed.user("b1")
    await seed.gig("g1", buyer, None)

    result = await lifecycle.update_offer_status("g1", "ghost", "buyer", "cancel")

    assert result.status_code == 404
    assert result.error == "User is not found"


@pytest.mark.asyncio
async def test_missing_gig_is_not_found(lifecycle, seed):
    await seed.user("b1")

    result = await lifecycle.update_offer_status("nope", "b1", "buyer", "cancel")

    assert result.status_code == 404
    assert result.error == "Gig not found"


@pytest.mark.asyncio
async def test_buyer_cannot_accept_offer_with_no_worker(lifecycle, seed):
    buyer = await seed.user("b1")
    await seed.gig("g1", buyer, None)

    result = await lifecycle.update_offer_status("g1", "b1", "buyer", "accept")

    assert result.success is False
    assert result.status_code == 400
    assert result.code == "INVALID_STATE"
    gig = await seed.reload_gig("g1")
    assert gig.status == GigStatus.PENDING_WORKER_ACCEPTANCE
    assert gig.worker_user_id is None


@pytest.mark.asyncio
async def test_buyer_accept_keeps_assigned_worker(lifecycle, seed):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker)

    result = await lifecycle.update_offer_status("g1", "b1", "buyer", "accept")

    assert result.success is True
    gig = await seed.reload_gig("g1")
    assert gig.status == GigStatus.ACCEPTED
    assert gig.worker_user_id == "u1-internal-id"


@pytest.mark.asyncio
async def test_accepted_write_requires_a_worker(session_factory, seed):
    buyer = await seed.user("b1")
    await seed.gig("g1", buyer, None)

    async with session_factory() as session, session.begin():
        rows = await crud.transition_gig(
            "g1", {GigStatus.PENDING_WORKER_ACCEPTANCE}, GigStatus.ACCEPTED, session,
            owner_role=Role.BUYER, owner_id=buyer.id,
        )

    assert rows == 0
    assert (await seed.reload_gig("g1")).status == GigStatus.PENDING_WORKER_ACCEPTANCE


@pytest.mark.asyncio
async def test_worker_cancel_is_not_filtered_by_assignment(lifecycle, seed, spy_ledger):
    buyer = await seed.user("b1")
    assigned = await seed.user("u1")
    await seed.user("u2", full_name="Other Worker")
    gig = await seed.gig("g1", buyer, assigned, status=GigStatus.ACCEPTED)
    await seed.payment(gig, buyer, "pi_1")

    result = await lifecycle.update_offer_status("g1", "u2", "worker", "cancel")

    assert result.success is True
    gig = await seed.reload_gig("g1")
    assert gig.status == GigStatus.CANCELLED_BY_WORKER
    assert gig.worker_user_id == "u1-internal-id"
    spy_ledger.cancel_related_payments.assert_awaited_once_with("g1")
    events = await seed.outbox()
    assert events[0].payload["title"] == "Gig Cancelled by Worker: Other Worker"


@pytest.mark.asyncio
async def test_enum_role_and_action_are_accepted(lifecycle, seed, spy_ledger):
    buyer = await seed.user("b1")
    worker = await seed.user("u1")
    await seed.gig("g1", buyer, worker, status=GigStatus.ACCEPTED)

    result = await lifecycle.update_offer_status("g1", "b1", Role.BUYER, OfferAction.CANCEL)

    assert result.success is True
    assert (await seed.reload_gig("g1")).status == GigStatus.CANCELLED_BY_BUYER
    spy_ledger.cancel_related_payments.assert_awaited_once_with("g1")
