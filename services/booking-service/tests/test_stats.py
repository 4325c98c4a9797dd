from datetime import timedelta

from app import ratings, services, stats

from conftest import BOOKING_DATE, principal


async def test_empty_stats_are_zeroed(db, people):
    result = await stats.booking_stats(db, principal(people.customer))
    assert result.total == 0
    assert result.pending == 0
    assert result.completed == 0
    assert result.total_earnings == 0

    overview = await stats.admin_booking_stats(db)
    assert overview.total == 0
    assert overview.total_revenue == 0
    assert overview.avg_rating == 0


async def test_stats_are_scoped_to_the_caller(book, db, people, other_service):
    mechanic = principal(people.mechanic)

    done = await book()
    for step in ("confirmed", "in_progress", "completed"):
        await services.change_status(db, mechanic, done.id, step)
    await book(scheduled_date=BOOKING_DATE + timedelta(days=1))
    cancelled = await book(scheduled_date=BOOKING_DATE + timedelta(days=2))
    await services.cancel_booking(db, principal(people.customer), cancelled.id)

    # another pair's booking never shows up
    await book(customer=people.other_customer, listing=other_service)

    mine = await stats.booking_stats(db, principal(people.customer))
    assert mine.total == 3
    assert mine.completed == 1
    assert mine.pending == 1
    assert mine.cancelled == 1
    assert mine.total_earnings == 500

    as_mechanic = await stats.booking_stats(db, mechanic)
    assert as_mechanic.total == 3

    other = await stats.booking_stats(db, principal(people.other_customer))
    assert other.total == 1
    assert other.pending == 1
    assert other.total_earnings == 0

    everyone = await stats.booking_stats(db, principal(people.admin))
    assert everyone.total == 4


async def test_admin_overview_includes_revenue_and_rating(book, db, people):
    mechanic = principal(people.mechanic)
    for day, rating in enumerate((5, 4)):
        booking = await book(scheduled_date=BOOKING_DATE + timedelta(days=day))
        for step in ("confirmed", "in_progress", "completed"):
            await services.change_status(db, mechanic, booking.id, step)
        await ratings.add_review(db, principal(people.customer), booking.id, rating)

    overview = await stats.admin_booking_stats(db)
    assert overview.total == 2
    assert overview.completed == 2
    assert overview.total_revenue == 1000
    assert overview.avg_rating == 4.5
