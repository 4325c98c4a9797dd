"""
Booking engine: creation, lookups, status transitions, cancellation and
additional charges.

Every mutation of an existing booking goes through ``guarded_write``, a
conditional UPDATE keyed on the version and status the caller read. A
concurrent writer that got there first makes the update match zero rows and
the request fails instead of double-appending history.
"""
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from . import lifecycle
from .booking_number import MAX_ATTEMPTS, generate_booking_number
from .errors import (
    ConcurrentModificationError,
    ForbiddenError,
    NotFoundError,
    ScheduleConflictError,
    ValidationError,
)
from .models import Booking, BookingStatusEntry, ServiceListing
from .schemas import CreateBookingRequest
from .security import Principal

SORTABLE_FIELDS = {
    "created_at": Booking.created_at,
    "scheduled_date": Booking.scheduled_date,
    "total_amount": Booking.total_amount,
    "status": Booking.status,
}


async def load_booking(db: AsyncSession, booking_id: int) -> Booking:
    res = await db.execute(
        select(Booking)
        .options(selectinload(Booking.status_history))
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = res.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def find_schedule_conflict(
    db: AsyncSession,
    mechanic_id: int,
    scheduled_date,
    exclude_booking_id: int | None = None,
) -> int | None:
    """Id of an active booking holding the mechanic on that date, if any."""
    stmt = select(Booking.id).where(
        Booking.mechanic_id == mechanic_id,
        Booking.scheduled_date == scheduled_date,
        Booking.status.in_(lifecycle.ACTIVE_STATUSES),
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    res = await db.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def guarded_write(
    db: AsyncSession,
    booking: Booking,
    changes: dict,
    *,
    updated_by: int | None = None,
    note: str | None = None,
    after=None,
) -> Booking:
    """
    Apply ``changes`` only if the row still has the version and status the
    caller loaded. A status change appends its history entry in the same
    transaction. ``after`` is an optional coroutine function run inside the
    transaction once the update has matched.
    """
    booking_id = booking.id
    current_status = booking.status
    now = lifecycle.utcnow()

    values = dict(changes)
    values["version"] = booking.version + 1
    values["updated_at"] = now

    stmt = (
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.version == booking.version,
            Booking.status == current_status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    try:
        result = await db.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationError()

        new_status = values.get("status")
        if new_status is not None and new_status != current_status:
            db.add(
                BookingStatusEntry(
                    booking_id=booking_id,
                    status=new_status,
                    timestamp=now,
                    note=note,
                    updated_by=updated_by,
                )
            )

        if after is not None:
            await after(db)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await load_booking(db, booking_id)


# ---- Creation ----

async def create_booking(db: AsyncSession, principal: Principal, data: CreateBookingRequest) -> Booking:
    res = await db.execute(select(ServiceListing).where(ServiceListing.id == data.service_id))
    service = res.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service not found")

    if not service.is_active or not service.is_available:
        raise ValidationError("Service is not available")

    if service.mechanic_id == principal.user_id:
        raise ValidationError("You cannot book your own service")

    if service.base_price is None or service.base_price < 0:
        raise ValidationError("Service has no valid base price")

    if await find_schedule_conflict(db, service.mechanic_id, data.scheduled_date):
        raise ScheduleConflictError(data.scheduled_date)

    location = data.service_location
    coordinates = location.coordinates

    # snapshot taken before the retry loop; a rollback expires the service row
    fields = {
        "service_id": service.id,
        "mechanic_id": service.mechanic_id,
        "customer_id": principal.user_id,
        "scheduled_date": data.scheduled_date,
        "scheduled_time": data.scheduled_time,
        "estimated_duration": service.estimated_duration,
        "address": location.address,
        "latitude": coordinates.lat if coordinates else None,
        "longitude": coordinates.lng if coordinates else None,
        "location_instructions": location.instructions,
        "service_requirements": list(data.service_requirements),
        "customer_notes": data.customer_notes,
        "base_price": service.base_price,
        "additional_charges": [],
        "total_amount": service.base_price,
        "status": lifecycle.INITIAL_STATUS,
    }

    for attempt in range(1, MAX_ATTEMPTS + 1):
        now = lifecycle.utcnow()
        number = generate_booking_number(now)

        booking = Booking(booking_number=number, version=1, created_at=now, updated_at=now, **fields)
        booking.status_history.append(
            BookingStatusEntry(
                status=fields["status"],
                timestamp=now,
                note="Booking created",
                updated_by=principal.user_id,
            )
        )
        db.add(booking)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # the active-date index fired: someone booked the mechanic meanwhile
            if await find_schedule_conflict(db, fields["mechanic_id"], fields["scheduled_date"]):
                raise ScheduleConflictError(fields["scheduled_date"])
            print(f"[booking-service] booking number collision {number} (attempt {attempt}/{MAX_ATTEMPTS})")
            continue

        return await load_booking(db, booking.id)

    raise ValidationError("Could not allocate a unique booking number, please retry")


# ---- Lookups ----

async def get_booking_for(db: AsyncSession, principal: Principal, booking_id: int) -> Booking:
    booking = await load_booking(db, booking_id)
    lifecycle.ensure_participant(booking, principal)
    return booking


async def _paginate(db: AsyncSession, conditions: list, order_by, page: int, limit: int):
    total_res = await db.execute(select(func.count(Booking.id)).where(*conditions))
    total = total_res.scalar_one()

    res = await db.execute(
        select(Booking)
        .options(selectinload(Booking.status_history))
        .where(*conditions)
        .order_by(order_by, Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(res.scalars().all()), total


async def list_bookings(
    db: AsyncSession,
    principal: Principal,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    on_date=None,
    page: int = 1,
    limit: int = 10,
    sort_by: str | None = None,
    sort_order: str = "desc",
):
    conditions = []
    if not principal.is_admin:
        conditions.append(
            or_(Booking.customer_id == principal.user_id, Booking.mechanic_id == principal.user_id)
        )
    if status:
        conditions.append(Booking.status == status)
    if payment_status:
        conditions.append(Booking.payment_status == payment_status)
    if on_date:
        conditions.append(Booking.scheduled_date == on_date)

    column = SORTABLE_FIELDS.get(sort_by or "created_at")
    if column is None:
        raise ValidationError(f"Cannot sort by {sort_by}", f"allowed: {sorted(SORTABLE_FIELDS)}")
    order_by = column.asc() if sort_order == "asc" else column.desc()

    return await _paginate(db, conditions, order_by, page, limit)


async def admin_list_bookings(
    db: AsyncSession,
    *,
    status: str | None = None,
    mechanic_id: int | None = None,
    customer_id: int | None = None,
    page: int = 1,
    limit: int = 20,
):
    conditions = []
    if status:
        conditions.append(Booking.status == status)
    if mechanic_id is not None:
        conditions.append(Booking.mechanic_id == mechanic_id)
    if customer_id is not None:
        conditions.append(Booking.customer_id == customer_id)

    return await _paginate(db, conditions, Booking.created_at.desc(), page, limit)


# ---- Transitions ----

async def change_status(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    target: str,
    note: str | None = None,
) -> Booking:
    booking = await load_booking(db, booking_id)

    lifecycle.ensure_participant(booking, principal, "You cannot update this booking")
    lifecycle.ensure_transition(booking.status, target)
    lifecycle.ensure_actor(booking, principal, target)

    changes = lifecycle.entry_effects(booking, target, principal, lifecycle.utcnow(), note)
    return await guarded_write(db, booking, changes, updated_by=principal.user_id, note=note)


async def cancel_booking(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    reason: str | None = None,
    fee: float | None = None,
) -> Booking:
    booking = await load_booking(db, booking_id)

    lifecycle.ensure_participant(booking, principal, "You cannot cancel this booking")

    if booking.status in lifecycle.NOT_CANCELLABLE:
        raise ValidationError("Booking cannot be cancelled", f"booking is {booking.status}")

    if fee is not None and not principal.is_admin:
        raise ForbiddenError("Only admins can set a cancellation fee")

    changes = lifecycle.entry_effects(booking, lifecycle.CANCELLED, principal, lifecycle.utcnow(), reason)
    changes["cancellation_reason"] = reason
    if fee is not None:
        changes["cancellation_fee"] = fee

    return await guarded_write(db, booking, changes, updated_by=principal.user_id, note=reason)


# ---- Charges ----

async def add_charge(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    description: str,
    amount: float,
) -> Booking:
    booking = await load_booking(db, booking_id)

    role = lifecycle.ensure_participant(booking, principal)
    if role not in (lifecycle.MECHANIC, lifecycle.ADMIN):
        raise ForbiddenError("Only the mechanic can add charges")

    if booking.status not in lifecycle.CHARGEABLE:
        raise ValidationError(f"Charges cannot be added to a booking in status {booking.status}")

    charges = list(booking.additional_charges or [])
    charges.append({"description": description, "amount": amount})
    total = booking.base_price + sum(c["amount"] for c in charges)

    return await guarded_write(
        db,
        booking,
        {"additional_charges": charges, "total_amount": round(total, 2)},
    )
