"""Gig lifecycle transition table.

    PENDING_WORKER_ACCEPTANCE -> ACCEPTED -> IN_PROGRESS
        -> PENDING_COMPLETION_WORKER | PENDING_COMPLETION_BUYER
        -> COMPLETED -> AWAITING_PAYMENT -> PAID

An offer may also end as DECLINED_BY_WORKER, and any gig that has not
reached completion may be cancelled by the buyer, the worker or an admin.
Terminal states have no outgoing edges.

Pure lookups only. Persistence and payment side effects live in
``gig_service.lifecycle``.
"""

from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from gig_service.models import Gig, GigStatus, OfferAction, Role

_CANCELLED = frozenset({
    GigStatus.CANCELLED_BY_BUYER,
    GigStatus.CANCELLED_BY_WORKER,
    GigStatus.CANCELLED_BY_ADMIN,
})

_TRANSITIONS: Dict[GigStatus, FrozenSet[GigStatus]] = {
    GigStatus.PENDING_WORKER_ACCEPTANCE: frozenset({
        GigStatus.ACCEPTED,
        GigStatus.DECLINED_BY_WORKER,
    }) | _CANCELLED,
    GigStatus.ACCEPTED: frozenset({GigStatus.IN_PROGRESS}) | _CANCELLED,
    GigStatus.IN_PROGRESS: frozenset({
        GigStatus.PENDING_COMPLETION_WORKER,
        GigStatus.PENDING_COMPLETION_BUYER,
    }) | _CANCELLED,
    GigStatus.PENDING_COMPLETION_WORKER: frozenset({
        GigStatus.COMPLETED,
        GigStatus.CANCELLED_BY_ADMIN,
    }),
    GigStatus.PENDING_COMPLETION_BUYER: frozenset({
        GigStatus.COMPLETED,
        GigStatus.CANCELLED_BY_ADMIN,
    }),
    GigStatus.COMPLETED: frozenset({GigStatus.AWAITING_PAYMENT, GigStatus.PAID}),
    GigStatus.AWAITING_PAYMENT: frozenset({GigStatus.PAID}),
    # terminal
    GigStatus.PAID: frozenset(),
    GigStatus.DECLINED_BY_WORKER: frozenset(),
    GigStatus.CANCELLED_BY_BUYER: frozenset(),
    GigStatus.CANCELLED_BY_WORKER: frozenset(),
    GigStatus.CANCELLED_BY_ADMIN: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in _TRANSITIONS.items() if not targets)

# which gig column must equal the actor's internal id
OWNER_COLUMN = {
    Role.BUYER: Gig.buyer_user_id,
    Role.WORKER: Gig.worker_user_id,
}


def can_transition(current: GigStatus, target: GigStatus) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def sources_for(target: GigStatus) -> FrozenSet[GigStatus]:
    """All statuses from which ``target`` is reachable in one step."""
    return frozenset(src for src, targets in _TRANSITIONS.items() if target in targets)


def is_terminal(status: GigStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_cancellation(status: GigStatus) -> bool:
    return status in _CANCELLED


def resolve_target_status(action: OfferAction, role: Role) -> GigStatus:
    """Map a UI action to the status it writes.

    Only ``accept`` has its own target; every other action, ``start`` and
    ``complete`` included, resolves to the actor's cancellation status.
    """
    if action == OfferAction.ACCEPT:
        return GigStatus.ACCEPTED
    if role == Role.BUYER:
        return GigStatus.CANCELLED_BY_BUYER
    return GigStatus.CANCELLED_BY_WORKER


def owner_id(gig: Gig, role: Role) -> Optional[str]:
    return getattr(gig, OWNER_COLUMN[role].key)


def is_offer_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        # sqlite hands timestamps back naive; they are stored as UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


def display_status(status: GigStatus) -> str:
    if status == GigStatus.ACCEPTED:
        return "ACCEPTED"
    if status == GigStatus.COMPLETED:
        return "COMPLETED"
    if status in _CANCELLED or status == GigStatus.DECLINED_BY_WORKER:
        return "CANCELLED"
    return "PENDING"
