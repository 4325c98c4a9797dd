from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle
from .models import Booking
from .ratings import round_rating
from .schemas import AdminBookingStats, BookingStats
from .security import Principal


def _count_status(status: str):
    return func.coalesce(func.sum(case((Booking.status == status, 1), else_=0)), 0).label(status)


def _completed_amount(label: str):
    return func.coalesce(
        func.sum(case((Booking.status == lifecycle.COMPLETED, Booking.total_amount), else_=0)),
        0,
    ).label(label)


def _status_columns():
    return [func.count(Booking.id).label("total")] + [_count_status(s) for s in lifecycle.BOOKING_STATUSES]


async def booking_stats(db: AsyncSession, principal: Principal) -> BookingStats:
    """Counts for the caller's own bookings (all bookings for admins)."""
    stmt = select(*_status_columns(), _completed_amount("total_earnings"))
    if not principal.is_admin:
        stmt = stmt.where(
            or_(Booking.customer_id == principal.user_id, Booking.mechanic_id == principal.user_id)
        )

    row = (await db.execute(stmt)).mappings().one()
    return BookingStats(**{k: v or 0 for k, v in row.items()})


async def admin_booking_stats(db: AsyncSession) -> AdminBookingStats:
    stmt = select(
        *_status_columns(),
        _completed_amount("total_revenue"),
        func.avg(Booking.customer_rating).label("avg_rating"),
    )
    row = dict((await db.execute(stmt)).mappings().one())

    avg = row.pop("avg_rating")
    return AdminBookingStats(
        avg_rating=round_rating(avg) if avg is not None else 0,
        **{k: v or 0 for k, v in row.items()},
    )
