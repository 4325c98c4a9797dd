from datetime import timedelta

import pytest

from app import negotiations, services
from app.errors import ForbiddenError, ScheduleConflictError, ValidationError

from conftest import BOOKING_DATE, principal

NEXT_DAY = BOOKING_DATE + timedelta(days=1)


async def test_request_keeps_current_schedule_until_accepted(book, db, people):
    booking = await book()
    booking = await negotiations.request_reschedule(
        db, principal(people.customer), booking.id, NEXT_DAY, "14:00", "Stuck at work"
    )

    assert booking.reschedule_status == "requested"
    assert booking.reschedule_requested_by == people.customer.id
    assert booking.reschedule_old_date == BOOKING_DATE
    assert booking.reschedule_old_time == "10:30"
    assert booking.reschedule_new_date == NEXT_DAY
    assert booking.reschedule_new_time == "14:00"
    assert booking.scheduled_date == BOOKING_DATE
    assert booking.scheduled_time == "10:30"


async def test_other_party_accepts_and_schedule_moves(book, db, people):
    booking = await book()
    await negotiations.request_reschedule(db, principal(people.customer), booking.id, NEXT_DAY, "14:00")

    with pytest.raises(ForbiddenError):
        await negotiations.respond_reschedule(db, principal(people.customer), booking.id, accept=True)

    booking = await negotiations.respond_reschedule(db, principal(people.mechanic), booking.id, accept=True)
    assert booking.reschedule_status == "accepted"
    assert booking.reschedule_responded_by == people.mechanic.id
    assert booking.scheduled_date == NEXT_DAY
    assert booking.scheduled_time == "14:00"
    assert booking.status == "pending"

    # the old date is free again
    assert await services.find_schedule_conflict(db, people.mechanic.id, BOOKING_DATE) is None


async def test_declined_request_leaves_schedule(book, db, people):
    booking = await book()
    await negotiations.request_reschedule(db, principal(people.mechanic), booking.id, NEXT_DAY, "09:00")

    booking = await negotiations.respond_reschedule(
        db, principal(people.customer), booking.id, accept=False, note="Tuesday only"
    )
    assert booking.reschedule_status == "declined"
    assert booking.reschedule_note == "Tuesday only"
    assert booking.scheduled_date == BOOKING_DATE


async def test_accept_into_a_taken_date_is_a_conflict(book, db, people):
    booking = await book()
    booking_id = booking.id
    await book(customer=people.other_customer, scheduled_date=NEXT_DAY)
    await negotiations.request_reschedule(db, principal(people.customer), booking_id, NEXT_DAY, "14:00")

    with pytest.raises(ScheduleConflictError):
        await negotiations.respond_reschedule(db, principal(people.mechanic), booking_id, accept=True)

    booking = await services.load_booking(db, booking_id)
    assert booking.scheduled_date == BOOKING_DATE
    assert booking.reschedule_status == "requested"


async def test_same_day_new_time_is_allowed(book, db, people):
    booking = await book()
    await negotiations.request_reschedule(db, principal(people.customer), booking.id, BOOKING_DATE, "16:00")

    booking = await negotiations.respond_reschedule(db, principal(people.mechanic), booking.id, accept=True)
    assert booking.scheduled_date == BOOKING_DATE
    assert booking.scheduled_time == "16:00"


async def test_unchanged_schedule_is_rejected(book, db, people):
    booking = await book()
    with pytest.raises(ValidationError):
        await negotiations.request_reschedule(db, principal(people.customer), booking.id, BOOKING_DATE, "10:30")


async def test_in_progress_booking_can_still_be_rescheduled(book, db, people):
    booking = await book()
    mechanic = principal(people.mechanic)
    await services.change_status(db, mechanic, booking.id, "confirmed")
    await services.change_status(db, mechanic, booking.id, "in_progress")

    await negotiations.request_reschedule(db, principal(people.customer), booking.id, NEXT_DAY, "14:00")
    booking = await negotiations.respond_reschedule(db, mechanic, booking.id, accept=True)

    assert booking.status == "in_progress"
    assert booking.scheduled_date == NEXT_DAY


@pytest.mark.parametrize("final", ["completed", "cancelled"])
async def test_terminal_booking_cannot_be_rescheduled(book, db, people, final):
    booking = await book()
    mechanic = principal(people.mechanic)
    steps = ("confirmed", "in_progress", "completed") if final == "completed" else ("cancelled",)
    for step in steps:
        await services.change_status(db, mechanic, booking.id, step)

    with pytest.raises(ValidationError) as exc:
        await negotiations.request_reschedule(db, principal(people.customer), booking.id, NEXT_DAY, "14:00")
    assert exc.value.message == f"Booking in status {final} cannot be rescheduled"


async def test_pending_request_is_refused_once_booking_finishes(book, db, people):
    booking = await book()
    mechanic = principal(people.mechanic)
    await negotiations.request_reschedule(db, principal(people.customer), booking.id, NEXT_DAY, "14:00")
    await services.cancel_booking(db, mechanic, booking.id)

    with pytest.raises(ValidationError):
        await negotiations.respond_reschedule(db, mechanic, booking.id, accept=True)


async def test_response_without_request_fails(book, db, people):
    booking = await book()
    with pytest.raises(ValidationError) as exc:
        await negotiations.respond_reschedule(db, principal(people.mechanic), booking.id, accept=True)
    assert exc.value.message == "No reschedule request is pending"


async def test_admin_may_answer_but_not_ask(book, db, people):
    booking = await book()
    admin = principal(people.admin)

    with pytest.raises(ForbiddenError):
        await negotiations.request_reschedule(db, admin, booking.id, NEXT_DAY, "14:00")

    await negotiations.request_reschedule(db, principal(people.mechanic), booking.id, NEXT_DAY, "14:00")
    booking = await negotiations.respond_reschedule(db, admin, booking.id, accept=True)
    assert booking.scheduled_date == NEXT_DAY
