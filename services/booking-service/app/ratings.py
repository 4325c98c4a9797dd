import math

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle
from .errors import ForbiddenError, ValidationError
from .models import Booking, User
from .security import Principal
from .services import guarded_write, load_booking


def round_rating(value) -> float:
    # half-up to one decimal: 4.25 -> 4.3
    return math.floor(float(value) * 10 + 0.5) / 10


async def mechanic_rating(db: AsyncSession, mechanic_id: int) -> tuple[float, int]:
    """
    Mean rating over every rated booking of the mechanic.
    Scans all of the mechanic's rated bookings, so cost grows with their job count.
    """
    res = await db.execute(
        select(func.avg(Booking.customer_rating), func.count(Booking.customer_rating)).where(
            Booking.mechanic_id == mechanic_id,
            Booking.customer_rating.is_not(None),
        )
    )
    average, total = res.one()
    if not total:
        return 0.0, 0
    return round_rating(average), int(total)


async def recompute_mechanic_rating(db: AsyncSession, mechanic_id: int) -> tuple[float, int]:
    average, total = await mechanic_rating(db, mechanic_id)
    await db.execute(
        update(User)
        .where(User.id == mechanic_id)
        .values(average_rating=average, total_reviews=total)
    )
    return average, total


async def add_review(
    db: AsyncSession,
    principal: Principal,
    booking_id: int,
    rating: int,
    review: str | None = None,
):
    """Attach the customer's review, returns (booking, (average_rating, total_reviews))."""
    booking = await load_booking(db, booking_id)

    if principal.user_id != booking.customer_id:
        raise ForbiddenError("Only the customer can add reviews")

    if booking.status != lifecycle.COMPLETED:
        raise ValidationError("Can only review completed bookings")

    if booking.customer_rating is not None:
        raise ValidationError("Booking already reviewed")

    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    mechanic_id = booking.mechanic_id
    aggregate = {}

    async def refresh_rating(session: AsyncSession):
        aggregate["value"] = await recompute_mechanic_rating(session, mechanic_id)

    changes = {
        "customer_rating": rating,
        "customer_review": review,
        "review_date": lifecycle.utcnow(),
    }
    booking = await guarded_write(db, booking, changes, after=refresh_rating)
    return booking, aggregate["value"]
