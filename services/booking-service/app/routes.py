from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from . import lifecycle, negotiations, ratings, services, stats
from .db import get_db
from .publisher import publisher
from .rbac import role_required
from .schemas import (
    AdditionalChargeRequest,
    BookingOut,
    BookingStatusName,
    CancelRequest,
    CreateBookingRequest,
    DisputeRequest,
    DisputeUpdate,
    Pagination,
    PaymentStatusName,
    RefundDecision,
    RefundRequest,
    RescheduleRequest,
    RescheduleResponse,
    ReviewRequest,
    StatusUpdateRequest,
)
from .security import Principal, get_principal

router = APIRouter(tags=["Bookings"])


def _booking_body(booking, **extra) -> dict:
    data = {"booking": BookingOut.from_model(booking)}
    data.update(extra)
    return {"status": "success", "data": data}


def _page_body(bookings, page: int, limit: int, total: int) -> dict:
    return {
        "status": "success",
        "results": len(bookings),
        "pagination": Pagination.build(page, limit, total),
        "data": {"bookings": [BookingOut.from_model(b) for b in bookings]},
    }


def _previous_status(booking) -> str | None:
    history = booking.status_history
    return history[-2].status if len(history) >= 2 else None


# ================= CREATE / READ =================

@router.post("/bookings", status_code=201)
async def create_booking(
    data: CreateBookingRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("customer")),
):
    booking = await services.create_booking(db, principal, data)
    await publisher.publish_booking("booking.created", booking)
    return _booking_body(booking)


@router.get("/bookings")
async def list_bookings(
    status: BookingStatusName | None = None,
    payment_status: PaymentStatusName | None = None,
    on_date: date | None = Query(default=None, alias="date"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: Literal["created_at", "scheduled_date", "total_amount", "status"] | None = None,
    sort_order: Literal["asc", "desc"] = "desc",
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    bookings, total = await services.list_bookings(
        db,
        principal,
        status=status,
        payment_status=payment_status,
        on_date=on_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return _page_body(bookings, page, limit, total)


@router.get("/bookings/stats")
async def booking_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    result = await stats.booking_stats(db, principal)
    return {"status": "success", "data": {"stats": result}}


@router.get("/bookings/admin/all")
async def admin_list_bookings(
    status: BookingStatusName | None = None,
    mechanic_id: int | None = None,
    customer_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("admin")),
):
    bookings, total = await services.admin_list_bookings(
        db,
        status=status,
        mechanic_id=mechanic_id,
        customer_id=customer_id,
        page=page,
        limit=limit,
    )
    return _page_body(bookings, page, limit, total)


@router.get("/bookings/admin/stats")
async def admin_booking_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("admin")),
):
    result = await stats.admin_booking_stats(db)
    return {"status": "success", "data": {"stats": result}}


@router.get("/bookings/{booking_id}")
async def get_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await services.get_booking_for(db, principal, booking_id)
    return _booking_body(booking)


# ================= LIFECYCLE =================

@router.patch("/bookings/{booking_id}/status")
async def update_booking_status(
    booking_id: int,
    data: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await services.change_status(db, principal, booking_id, data.status, data.note)
    await publisher.publish_booking(
        "booking.status_changed",
        booking,
        previous_status=_previous_status(booking),
        note=data.note,
        updated_by=principal.user_id,
    )
    return _booking_body(booking)


@router.patch("/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    data: CancelRequest | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    data = data or CancelRequest()
    booking = await services.cancel_booking(db, principal, booking_id, data.reason, data.fee)
    await publisher.publish_booking(
        "booking.cancelled",
        booking,
        previous_status=_previous_status(booking),
        reason=data.reason,
        cancelled_by=principal.user_id,
    )
    return _booking_body(booking)


@router.post("/bookings/{booking_id}/charges")
async def add_charge(
    booking_id: int,
    data: AdditionalChargeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await services.add_charge(db, principal, booking_id, data.description, data.amount)
    await publisher.publish_booking("booking.charge_added", booking, description=data.description, amount=data.amount)
    return _booking_body(booking)


# ================= REVIEW =================

@router.post("/bookings/{booking_id}/review")
async def add_review(
    booking_id: int,
    data: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("customer")),
):
    booking, (average, total) = await ratings.add_review(db, principal, booking_id, data.rating, data.review)
    await publisher.publish_booking("booking.reviewed", booking, rating=data.rating)
    await publisher.publish_booking(
        "mechanic.rating_updated",
        booking,
        average_rating=average,
        total_reviews=total,
    )
    return _booking_body(booking, mechanic_rating={"average_rating": average, "total_reviews": total})


# ================= REFUND =================

@router.post("/bookings/{booking_id}/refund")
async def request_refund(
    booking_id: int,
    data: RefundRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("customer")),
):
    booking = await negotiations.request_refund(db, principal, booking_id, data.reason, data.amount)
    await publisher.publish_booking("booking.refund_requested", booking, refund_amount=booking.refund_amount)
    return _booking_body(booking)


@router.patch("/bookings/{booking_id}/refund")
async def resolve_refund(
    booking_id: int,
    data: RefundDecision,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("admin")),
):
    booking = await negotiations.resolve_refund(db, principal, booking_id, data.status)
    await publisher.publish_booking(
        f"booking.refund_{booking.refund_status}",
        booking,
        refund_amount=booking.refund_amount,
        refund_status=booking.refund_status,
    )
    return _booking_body(booking)


# ================= RESCHEDULE =================

@router.post("/bookings/{booking_id}/reschedule")
async def request_reschedule(
    booking_id: int,
    data: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await negotiations.request_reschedule(
        db, principal, booking_id, data.new_date, data.new_time, data.note
    )
    await publisher.publish_booking(
        "booking.reschedule_requested",
        booking,
        requested_by=principal.user_id,
        new_date=data.new_date.isoformat(),
        new_time=data.new_time,
    )
    return _booking_body(booking)


@router.patch("/bookings/{booking_id}/reschedule")
async def respond_reschedule(
    booking_id: int,
    data: RescheduleResponse,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await negotiations.respond_reschedule(
        db, principal, booking_id, accept=(data.action == "accept"), note=data.note
    )
    await publisher.publish_booking(
        f"booking.reschedule_{booking.reschedule_status}",
        booking,
        responded_by=principal.user_id,
    )
    return _booking_body(booking)


# ================= DISPUTE =================

@router.post("/bookings/{booking_id}/dispute")
async def open_dispute(
    booking_id: int,
    data: DisputeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    booking = await negotiations.open_dispute(db, principal, booking_id, data.reason)
    await publisher.publish_booking("booking.dispute_opened", booking, reason=data.reason)
    return _booking_body(booking)


@router.patch("/bookings/{booking_id}/dispute")
async def update_dispute(
    booking_id: int,
    data: DisputeUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(role_required("admin")),
):
    if data.action == "under_review":
        booking = await negotiations.review_dispute(db, principal, booking_id)
        await publisher.publish_booking("booking.dispute_under_review", booking)
    else:
        booking = await negotiations.resolve_dispute(db, principal, booking_id, data.resolution)
        await publisher.publish_booking(
            "booking.status_changed",
            booking,
            previous_status=lifecycle.DISPUTED,
            note=data.resolution,
            updated_by=principal.user_id,
        )
    return _booking_body(booking)
