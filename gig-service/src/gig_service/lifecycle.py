"""Gig lifecycle controller.

Each operation resolves the acting user, then loads and locks the gig,
validates the transition and writes it with a conditional update in a
single transaction. Payment side effects run after that transaction has
committed; a ledger failure is reported to the caller but never rolls the
status back.

Public methods never raise: every outcome is returned as an ``OfferResult``.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gig_service import crud
from gig_service.errors import (
    GigServiceError,
    InvalidState,
    NoPaymentsFound,
    NotFound,
    OfferExpired,
    UpdateConflict,
    UserNotFound,
)
from gig_service.ledger import PaymentLedger
from gig_service.models import Gig, GigStatus, OfferAction, Role, User
from gig_service.schemas import OfferResult
from gig_service.transitions import (
    is_offer_expired,
    owner_id,
    resolve_target_status,
    sources_for,
)

logger = logging.getLogger("gigs.lifecycle")

GIG_CANCELLED_BY_WORKER = "GIG_CANCELLED_BY_WORKER"


def _failure(exc: GigServiceError) -> OfferResult:
    return OfferResult(success=False, status_code=exc.status_code, error=exc.message, code=exc.code)


class GigLifecycle:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: PaymentLedger,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._ledger = ledger
        self._clock = clock

    async def accept_offer(self, gig_id: str, worker_uid: str) -> OfferResult:
        return await self._run(
            lambda: self._accept(gig_id, worker_uid),
            "Failed to accept gig offer",
            "Gig offer accepted successfully",
        )

    async def decline_offer(self, gig_id: str, worker_uid: str) -> OfferResult:
        return await self._run(
            lambda: self._decline(gig_id, worker_uid),
            "Failed to decline gig offer",
            "Gig offer declined successfully",
        )

    async def update_offer_status(
        self, gig_id: str, user_uid: str, role: Role | str, action: OfferAction | str
    ) -> OfferResult:
        return await self._run(
            lambda: self._update_status(gig_id, user_uid, role, action),
            "Unknown error updating gig",
            None,
        )

    async def _run(
        self,
        operation: Callable[[], Awaitable[Optional[OfferResult]]],
        fallback_error: str,
        success_message: Optional[str],
    ) -> OfferResult:
        try:
            ledger_failure = await operation()
        except GigServiceError as exc:
            logger.info("[Lifecycle] %s: %s", exc.code, exc.message)
            return _failure(exc)
        except Exception as exc:
            logger.exception("[Lifecycle] %s", fallback_error)
            return OfferResult(
                success=False,
                status_code=500,
                error=str(exc) or fallback_error,
                code="INTERNAL_ERROR",
            )
        if ledger_failure is not None:
            return ledger_failure
        return OfferResult(success=True, status_code=200, message=success_message)

    async def _accept(self, gig_id: str, worker_uid: str) -> None:
        not_available = "Gig not found or not available for acceptance"
        async with self._session_factory() as session, session.begin():
            user = await self._require_user(worker_uid, session, "User not found")
            gig = await crud.get_gig_for_update(gig_id, session)
            if gig is None:
                raise NotFound(not_available)
            self._require_not_expired(gig)
            if gig.status != GigStatus.PENDING_WORKER_ACCEPTANCE or gig.worker_user_id != user.id:
                raise NotFound(not_available)

            rows = await crud.transition_gig(
                gig.id,
                {GigStatus.PENDING_WORKER_ACCEPTANCE},
                GigStatus.ACCEPTED,
                session,
                assign_worker_id=user.id,
                owner_role=Role.WORKER,
                owner_id=user.id,
            )
            if rows == 0:
                raise UpdateConflict("Failed to update gig offer")
        logger.info("[Lifecycle] Gig %s accepted by worker %s", gig_id, user.id)

    async def _decline(self, gig_id: str, worker_uid: str) -> Optional[OfferResult]:
        not_available = "Gig not found or not available for declining"
        async with self._session_factory() as session, session.begin():
            user = await self._require_user(worker_uid, session, "User not found")
            gig = await crud.get_gig_for_update(gig_id, session)
            if gig is None:
                raise NotFound(not_available)
            self._require_not_expired(gig)
            if gig.status != GigStatus.PENDING_WORKER_ACCEPTANCE or gig.worker_user_id is not None:
                raise NotFound(not_available)

            rows = await crud.transition_gig(
                gig.id,
                {GigStatus.PENDING_WORKER_ACCEPTANCE},
                GigStatus.DECLINED_BY_WORKER,
                session,
                require_unassigned=True,
            )
            if rows == 0:
                raise UpdateConflict("Failed to decline gig offer")
            await self._notify_cancelled_by_worker(gig, user, session)
        logger.info("[Lifecycle] Gig %s declined by worker %s", gig_id, user.id)

        return await self._cancel_payments(gig_id)

    async def _update_status(
        self, gig_id: str, user_uid: str, role: Role | str, action: OfferAction | str
    ) -> Optional[OfferResult]:
        try:
            role, action = Role(role), OfferAction(action)
        except ValueError:
            raise InvalidState("Invalid action or role") from None

        target = resolve_target_status(action, role)
        async with self._session_factory() as session, session.begin():
            user = await self._require_user(user_uid, session, "User is not found")
            gig = await crud.get_gig_for_update(gig_id, session)
            if gig is None:
                raise NotFound("Gig not found")
            if role == Role.WORKER and action in (OfferAction.ACCEPT, OfferAction.CANCEL):
                self._require_not_expired(gig, "Gig has expired")

            legal_sources = sources_for(target)
            if gig.status not in legal_sources:
                raise InvalidState(f"Cannot move gig from {gig.status.value} to {target.value}")

            if action == OfferAction.ACCEPT and role == Role.WORKER:
                if gig.worker_user_id not in (None, user.id):
                    raise NotFound("Gig not found")
                rows = await crud.transition_gig(
                    gig.id, legal_sources, target, session,
                    assign_worker_id=user.id,
                    require_open_or_worker=user.id,
                )
            elif action == OfferAction.CANCEL and role == Role.WORKER:
                rows = await crud.transition_gig(gig.id, legal_sources, target, session)
                if rows:
                    await self._notify_cancelled_by_worker(gig, user, session)
            else:
                if owner_id(gig, role) != user.id:
                    raise NotFound("Gig not found")
                if target == GigStatus.ACCEPTED and gig.worker_user_id is None:
                    raise InvalidState("Gig has no assigned worker to accept it")
                rows = await crud.transition_gig(
                    gig.id, legal_sources, target, session,
                    owner_role=role,
                    owner_id=user.id,
                )
            if rows == 0:
                raise UpdateConflict("Failed to update gig status")
        logger.info(
            "[Lifecycle] Gig %s moved to %s by %s %s (action %s)",
            gig_id, target.value, role.value, user.id, action.value,
        )

        if action == OfferAction.CANCEL:
            return await self._cancel_payments(gig_id)
        return None

    async def _cancel_payments(self, gig_id: str) -> Optional[OfferResult]:
        try:
            await self._ledger.cancel_related_payments(gig_id)
        except NoPaymentsFound as exc:
            logger.warning("[Lifecycle] %s", exc.message)
            return None
        except GigServiceError as exc:
            logger.error("[Lifecycle] Gig %s status changed but payments not cancelled: %s", gig_id, exc.message)
            return _failure(exc)
        return None

    async def _require_user(self, uid: str, session: AsyncSession, message: str) -> User:
        user = await crud.get_user_by_uid(uid, session)
        if user is None:
            raise UserNotFound(message)
        return user

    def _require_not_expired(self, gig: Gig, message: str = "This gig offer has expired") -> None:
        if is_offer_expired(gig.expires_at, self._clock()):
            raise OfferExpired(message)

    async def _notify_cancelled_by_worker(self, gig: Gig, worker: User, session: AsyncSession) -> None:
        await crud.add_outbox_event(
            gig.id,
            GIG_CANCELLED_BY_WORKER,
            {
                "topic": gig.buyer_user_id,
                "title": f"Gig Cancelled by Worker: {worker.full_name or ''}".rstrip(),
                "body": "The worker has cancelled the gig.",
                "click_action": f"/buyer/gigs/{gig.id}",
                "data": {"gigId": gig.id, "type": GIG_CANCELLED_BY_WORKER},
            },
            session,
        )
