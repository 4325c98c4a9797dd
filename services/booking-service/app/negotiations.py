"""
Two-party workflows hanging off a booking: refunds, reschedules, disputes.

Each booking carries a single slot per workflow. A fresh request replaces a
finished one (and a pending reschedule), it never queues behind it.
"""
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle
from .errors import ForbiddenError, ScheduleConflictError, ValidationError
from .models import Booking
from .security import Principal
from .services import change_status, find_schedule_conflict, guarded_write, load_booking


# ---- Refunds ----

async def request_refund(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    reason: str,
    amount: float | None = None,
) -> Booking:
    booking = await load_booking(db, booking_id)

    if principal.user_id != booking.customer_id:
        raise ForbiddenError("Only the customer can request a refund")

    if not booking.is_paid:
        raise ValidationError("Only paid bookings can be refunded")

    if booking.refund_status in (lifecycle.REFUND_REQUESTED, lifecycle.REFUND_APPROVED):
        raise ValidationError("A refund request is already outstanding")

    if booking.refund_status == lifecycle.REFUND_PROCESSED:
        raise ValidationError("Booking has already been refunded")

    amount = booking.total_amount if amount is None else amount
    if amount <= 0 or amount > booking.total_amount:
        raise ValidationError("Refund amount must be positive and not exceed the booking total")

    changes = {
        "refund_amount": amount,
        "refund_reason": reason,
        "refund_status": lifecycle.REFUND_REQUESTED,
        "is_refunded": False,
        "refunded_at": None,
        "refunded_by": None,
    }
    return await guarded_write(db, booking, changes)


async def resolve_refund(db: AsyncSession, principal: Principal, booking_id: int, decision: str) -> Booking:
    if not principal.is_admin:
        raise ForbiddenError("Only admins can resolve refunds")

    booking = await load_booking(db, booking_id)

    allowed = lifecycle.REFUND_RESOLUTIONS.get(booking.refund_status, ())
    if decision not in allowed:
        raise ValidationError(f"Cannot move refund from {booking.refund_status} to {decision}")

    changes = {"refund_status": decision}
    if decision == lifecycle.REFUND_PROCESSED:
        changes["is_refunded"] = True
        changes["refunded_at"] = lifecycle.utcnow()
        changes["refunded_by"] = principal.user_id

    return await guarded_write(db, booking, changes)


# ---- Reschedules ----

async def request_reschedule(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    new_date: date,
    new_time: str,
    note: str | None = None,
) -> Booking:
    booking = await load_booking(db, booking_id)

    role = lifecycle.ensure_participant(booking, principal)
    if role == lifecycle.ADMIN:
        raise ForbiddenError("Only the customer or mechanic can request a reschedule")

    if booking.status not in lifecycle.RESCHEDULABLE:
        raise ValidationError(f"Booking in status {booking.status} cannot be rescheduled")

    if new_date == booking.scheduled_date and new_time == booking.scheduled_time:
        raise ValidationError("New schedule is the same as the current one")

    changes = {
        "reschedule_requested_by": principal.user_id,
        "reschedule_requested_at": lifecycle.utcnow(),
        "reschedule_old_date": booking.scheduled_date,
        "reschedule_old_time": booking.scheduled_time,
        "reschedule_new_date": new_date,
        "reschedule_new_time": new_time,
        "reschedule_status": lifecycle.RESCHEDULE_REQUESTED,
        "reschedule_responded_at": None,
        "reschedule_responded_by": None,
        "reschedule_note": note,
    }
    return await guarded_write(db, booking, changes)


async def respond_reschedule(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    accept: bool,
    note: str | None = None,
) -> Booking:
    booking = await load_booking(db, booking_id)

    role = lifecycle.ensure_participant(booking, principal)

    if booking.reschedule_status != lifecycle.RESCHEDULE_REQUESTED:
        raise ValidationError("No reschedule request is pending")

    if role != lifecycle.ADMIN and principal.user_id == booking.reschedule_requested_by:
        raise ForbiddenError("The other party has to answer this reschedule request")

    if booking.status not in lifecycle.RESCHEDULABLE:
        raise ValidationError(f"Booking in status {booking.status} cannot be rescheduled")

    changes = {
        "reschedule_responded_at": lifecycle.utcnow(),
        "reschedule_responded_by": principal.user_id,
    }
    if note:
        changes["reschedule_note"] = note

    if not accept:
        changes["reschedule_status"] = lifecycle.RESCHEDULE_DECLINED
        return await guarded_write(db, booking, changes)

    new_date = booking.reschedule_new_date
    if await find_schedule_conflict(db, booking.mechanic_id, new_date, exclude_booking_id=booking.id):
        raise ScheduleConflictError(new_date)

    changes.update(
        {
            "scheduled_date": new_date,
            "scheduled_time": booking.reschedule_new_time,
            "reschedule_status": lifecycle.RESCHEDULE_ACCEPTED,
        }
    )
    try:
        return await guarded_write(db, booking, changes)
    except IntegrityError:
        raise ScheduleConflictError(new_date)


# ---- Disputes ----

async def open_dispute(db: AsyncSession, principal: Principal, booking_id: int, reason: str) -> Booking:
    booking = await load_booking(db, booking_id)

    role = lifecycle.ensure_participant(booking, principal)
    if role == lifecycle.ADMIN:
        raise ForbiddenError("Only the customer or mechanic can open a dispute")

    if booking.status not in lifecycle.DISPUTABLE:
        raise ValidationError(f"Booking in status {booking.status} cannot be disputed")

    changes = {
        "status": lifecycle.DISPUTED,
        "dispute_reason": reason,
        "dispute_status": lifecycle.DISPUTE_OPENED,
        "dispute_resolution": None,
    }
    return await guarded_write(db, booking, changes, updated_by=principal.user_id, note=reason)


async def review_dispute(db: AsyncSession, principal: Principal, booking_id: int) -> Booking:
    if not principal.is_admin:
        raise ForbiddenError("Only admins can review disputes")

    booking = await load_booking(db, booking_id)
    if booking.status != lifecycle.DISPUTED or booking.dispute_status != lifecycle.DISPUTE_OPENED:
        raise ValidationError("Only newly opened disputes can be put under review")

    return await guarded_write(db, booking, {"dispute_status": lifecycle.DISPUTE_UNDER_REVIEW})


async def resolve_dispute(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    resolution: str | None = None,
) -> Booking:
    return await change_status(db, principal, booking_id, lifecycle.RESOLVED, note=resolution)
