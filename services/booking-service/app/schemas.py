from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from . import lifecycle

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

BookingStatusName = Literal["pending", "confirmed", "in_progress", "completed", "cancelled", "disputed", "resolved"]
PaymentStatusName = Literal["pending", "paid", "failed"]


# ---- Requests ----

class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class ServiceLocation(BaseModel):
    address: str = Field(min_length=1)
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = None


class CreateBookingRequest(BaseModel):
    service_id: int
    scheduled_date: date
    scheduled_time: str = Field(pattern=HHMM_PATTERN)
    service_location: ServiceLocation
    customer_notes: Optional[str] = Field(default=None, max_length=500)
    service_requirements: List[str] = Field(default_factory=list)

    @field_validator("service_requirements")
    @classmethod
    def strip_requirements(cls, value: List[str]) -> List[str]:
        return [r.strip() for r in value if r and r.strip()]


class StatusUpdateRequest(BaseModel):
    status: BookingStatusName
    note: Optional[str] = Field(default=None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    fee: Optional[float] = Field(default=None, ge=0)


class ReviewRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: Optional[str] = Field(default=None, max_length=1000)


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    reason: str = Field(min_length=1, max_length=500)


class RefundDecision(BaseModel):
    status: Literal["approved", "rejected", "processed"]


class RescheduleRequest(BaseModel):
    new_date: date
    new_time: str = Field(pattern=HHMM_PATTERN)
    note: Optional[str] = Field(default=None, max_length=500)


class RescheduleResponse(BaseModel):
    action: Literal["accept", "decline"]
    note: Optional[str] = Field(default=None, max_length=500)


class AdditionalChargeRequest(BaseModel):
    description: str = Field(min_length=1, max_length=200)
    amount: float = Field(gt=0)


class DisputeRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class DisputeUpdate(BaseModel):
    action: Literal["under_review", "resolve"]
    resolution: Optional[str] = Field(default=None, max_length=1000)


# ---- Responses ----

class StatusHistoryEntry(BaseModel):
    status: str
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[int] = None


class AdditionalCharge(BaseModel):
    description: str
    amount: float


class LocationOut(BaseModel):
    address: str
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = None


class PaymentOut(BaseModel):
    payment_status: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    method: str = "cash"
    transaction_id: Optional[str] = None
    gateway: Optional[str] = None


class CancellationOut(BaseModel):
    reason: Optional[str] = None
    fee: Optional[float] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None


class DisputeOut(BaseModel):
    reason: Optional[str] = None
    status: str
    resolution: Optional[str] = None


class ReviewOut(BaseModel):
    rating: Optional[int] = None
    review: Optional[str] = None
    review_date: Optional[datetime] = None


class RescheduleOut(BaseModel):
    status: str
    requested_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    old_date: Optional[date] = None
    old_time: Optional[str] = None
    new_date: Optional[date] = None
    new_time: Optional[str] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[int] = None
    note: Optional[str] = None


class RefundOut(BaseModel):
    is_refunded: bool
    refund_amount: Optional[float] = None
    refund_reason: Optional[str] = None
    refund_status: str
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[int] = None


class ServiceSummary(BaseModel):
    id: int
    title: str
    category: str
    base_price: float


class MechanicSummary(BaseModel):
    id: int
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    average_rating: float = 0
    total_reviews: int = 0


class CustomerSummary(BaseModel):
    id: int
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


def _summary(model, record):
    if record is None:
        return None
    return model(**{name: getattr(record, name) for name in model.model_fields})


class BookingOut(BaseModel):
    id: int
    booking_number: str
    service_id: int
    mechanic_id: int
    customer_id: int
    service: Optional[ServiceSummary] = None
    mechanic: Optional[MechanicSummary] = None
    customer: Optional[CustomerSummary] = None
    scheduled_date: date
    scheduled_time: str
    estimated_duration: Optional[int] = None
    service_location: LocationOut
    service_requirements: List[str] = Field(default_factory=list)
    customer_notes: Optional[str] = None
    base_price: float
    additional_charges: List[AdditionalCharge] = Field(default_factory=list)
    total_amount: float
    status: str
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    actual_duration: Optional[int] = None
    payment: PaymentOut
    cancellation: CancellationOut
    dispute: DisputeOut
    review: ReviewOut
    reschedule: RescheduleOut
    refund: RefundOut
    version: int
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def additional_charges_total(self) -> float:
        return round(sum(c.amount for c in self.additional_charges), 2)

    @computed_field
    @property
    def is_overdue(self) -> bool:
        return lifecycle.is_overdue(self)

    @classmethod
    def from_model(cls, booking) -> "BookingOut":
        coordinates = None
        if booking.latitude is not None and booking.longitude is not None:
            coordinates = Coordinates(lat=booking.latitude, lng=booking.longitude)

        return cls(
            id=booking.id,
            booking_number=booking.booking_number,
            service_id=booking.service_id,
            mechanic_id=booking.mechanic_id,
            customer_id=booking.customer_id,
            service=_summary(ServiceSummary, booking.service),
            mechanic=_summary(MechanicSummary, booking.mechanic),
            customer=_summary(CustomerSummary, booking.customer),
            scheduled_date=booking.scheduled_date,
            scheduled_time=booking.scheduled_time,
            estimated_duration=booking.estimated_duration,
            service_location=LocationOut(
                address=booking.address,
                coordinates=coordinates,
                instructions=booking.location_instructions,
            ),
            service_requirements=booking.service_requirements or [],
            customer_notes=booking.customer_notes,
            base_price=booking.base_price,
            additional_charges=booking.additional_charges or [],
            total_amount=booking.total_amount,
            status=booking.status,
            status_history=[
                StatusHistoryEntry(
                    status=e.status,
                    timestamp=e.timestamp,
                    note=e.note,
                    updated_by=e.updated_by,
                )
                for e in booking.status_history
            ],
            actual_start_time=booking.actual_start_time,
            actual_end_time=booking.actual_end_time,
            actual_duration=booking.actual_duration,
            payment=PaymentOut(
                payment_status=booking.payment_status,
                is_paid=booking.is_paid,
                paid_at=booking.paid_at,
                method=booking.payment_method or lifecycle.PAYMENT_METHOD_DEFAULT,
                transaction_id=booking.payment_transaction_id,
                gateway=booking.payment_gateway,
            ),
            cancellation=CancellationOut(
                reason=booking.cancellation_reason,
                fee=booking.cancellation_fee,
                cancelled_by=booking.cancelled_by,
                cancelled_at=booking.cancelled_at,
            ),
            dispute=DisputeOut(
                reason=booking.dispute_reason,
                status=booking.dispute_status,
                resolution=booking.dispute_resolution,
            ),
            review=ReviewOut(
                rating=booking.customer_rating,
                review=booking.customer_review,
                review_date=booking.review_date,
            ),
            reschedule=RescheduleOut(
                status=booking.reschedule_status,
                requested_by=booking.reschedule_requested_by,
                requested_at=booking.reschedule_requested_at,
                old_date=booking.reschedule_old_date,
                old_time=booking.reschedule_old_time,
                new_date=booking.reschedule_new_date,
                new_time=booking.reschedule_new_time,
                responded_at=booking.reschedule_responded_at,
                responded_by=booking.reschedule_responded_by,
                note=booking.reschedule_note,
            ),
            refund=RefundOut(
                is_refunded=booking.is_refunded,
                refund_amount=booking.refund_amount,
                refund_reason=booking.refund_reason,
                refund_status=booking.refund_status,
                refunded_at=booking.refunded_at,
                refunded_by=booking.refunded_by,
            ),
            version=booking.version,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = -(-total // limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class BookingStats(BaseModel):
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    disputed: int = 0
    resolved: int = 0
    total_earnings: float = 0


class AdminBookingStats(BaseModel):
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    disputed: int = 0
    resolved: int = 0
    total_revenue: float = 0
    avg_rating: float = 0
