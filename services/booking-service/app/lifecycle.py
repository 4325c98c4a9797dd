"""
Booking status state machine.

Holds the status vocabulary, the transition table, the per-transition actor
rules and the timing side effects applied when a booking enters a status.
Nothing in here touches the database.
"""
import math
from datetime import datetime, time, timezone

from .errors import ForbiddenError, InvalidTransitionError

PENDING = "pending"
CONFIRMED = "confirmed"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
DISPUTED = "disputed"
RESOLVED = "resolved"

BOOKING_STATUSES = (PENDING, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED, DISPUTED, RESOLVED)

# a mechanic may hold at most one booking in these statuses per date
ACTIVE_STATUSES = (PENDING, CONFIRMED, IN_PROGRESS)
TERMINAL_STATUSES = (COMPLETED, CANCELLED, RESOLVED)

# new bookings wait for the mechanic to confirm
INITIAL_STATUS = PENDING

VALID_TRANSITIONS = {
    PENDING: (CONFIRMED, CANCELLED),
    CONFIRMED: (IN_PROGRESS, CANCELLED),
    IN_PROGRESS: (COMPLETED, CANCELLED),
    COMPLETED: (),
    CANCELLED: (),
    DISPUTED: (RESOLVED,),
    RESOLVED: (),
}

CUSTOMER = "customer"
MECHANIC = "mechanic"
ADMIN = "admin"

TRANSITION_ACTORS = {
    CONFIRMED: {MECHANIC, ADMIN},
    IN_PROGRESS: {MECHANIC, ADMIN},
    COMPLETED: {MECHANIC, ADMIN},
    CANCELLED: {CUSTOMER, MECHANIC, ADMIN},
    RESOLVED: {ADMIN},
}

NOT_CANCELLABLE = (COMPLETED, CANCELLED, RESOLVED)
DISPUTABLE = (CONFIRMED, IN_PROGRESS, COMPLETED)
RESCHEDULABLE = tuple(s for s in BOOKING_STATUSES if s not in TERMINAL_STATUSES)
CHARGEABLE = (CONFIRMED, IN_PROGRESS)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"

PAYMENT_METHODS = ("cash", "card", "mobile_banking", "bank_transfer")
PAYMENT_METHOD_DEFAULT = "cash"

DISPUTE_NONE = "none"
DISPUTE_OPENED = "opened"
DISPUTE_UNDER_REVIEW = "under_review"
DISPUTE_RESOLVED = "resolved"

RESCHEDULE_NONE = "none"
RESCHEDULE_REQUESTED = "requested"
RESCHEDULE_ACCEPTED = "accepted"
RESCHEDULE_DECLINED = "declined"

REFUND_NONE = "none"
REFUND_REQUESTED = "requested"
REFUND_APPROVED = "approved"
REFUND_REJECTED = "rejected"
REFUND_PROCESSED = "processed"

REFUND_RESOLUTIONS = {
    REFUND_REQUESTED: (REFUND_APPROVED, REFUND_REJECTED, REFUND_PROCESSED),
    REFUND_APPROVED: (REFUND_REJECTED, REFUND_PROCESSED),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def scheduled_at(booking) -> datetime:
    hour, minute = (int(part) for part in booking.scheduled_time.split(":"))
    return datetime.combine(booking.scheduled_date, time(hour, minute), tzinfo=timezone.utc)


def is_overdue(booking, now: datetime | None = None) -> bool:
    """Past its scheduled start without having reached a terminal status."""
    if booking.status in TERMINAL_STATUSES:
        return False
    return (now or utcnow()) > scheduled_at(booking)


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, ())


def ensure_transition(current: str, target: str):
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def actor_role(booking, principal) -> str | None:
    """Which side of the booking the principal acts for, admin first."""
    if principal.is_admin:
        return ADMIN
    if principal.user_id == booking.customer_id:
        return CUSTOMER
    if principal.user_id == booking.mechanic_id:
        return MECHANIC
    return None


def ensure_participant(booking, principal, message: str = "You do not have access to this booking") -> str:
    role = actor_role(booking, principal)
    if role is None:
        raise ForbiddenError(message)
    return role


def ensure_actor(booking, principal, target: str) -> str:
    role = ensure_participant(booking, principal, "You cannot update this booking")
    allowed = TRANSITION_ACTORS.get(target, set())
    if role not in allowed:
        raise ForbiddenError(f"A {role} cannot move a booking to {target}")
    return role


def duration_minutes(start: datetime, end: datetime) -> int:
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return int(math.floor(seconds / 60 + 0.5))


def entry_effects(booking, target: str, principal, now: datetime, note: str | None = None) -> dict:
    """Column changes applied when a booking enters ``target``."""
    changes = {"status": target}

    if target == IN_PROGRESS:
        changes["actual_start_time"] = now

    elif target == COMPLETED:
        start = as_utc(booking.actual_start_time)
        # end never precedes start, even under clock skew between writers
        end = max(now, start) if start is not None else now
        changes["actual_end_time"] = end
        if start is not None:
            changes["actual_duration"] = duration_minutes(start, end)

    elif target == CANCELLED:
        changes["cancelled_by"] = principal.user_id
        changes["cancelled_at"] = now
        if note:
            changes["cancellation_reason"] = note

    elif target == RESOLVED:
        changes["dispute_status"] = DISPUTE_RESOLVED
        if note:
            changes["dispute_resolution"] = note

    return changes
