from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from .db import Base
from .lifecycle import (
    ACTIVE_STATUSES,
    DISPUTE_NONE,
    INITIAL_STATUS,
    PAYMENT_METHOD_DEFAULT,
    PAYMENT_PENDING,
    REFUND_NONE,
    RESCHEDULE_NONE,
    utcnow,
)

_ACTIVE_SQL = "status IN ({})".format(", ".join(f"'{s}'" for s in ACTIVE_STATUSES))


class User(Base):
    """Identity directory record. Only the rating aggregate is written here."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    role = Column(String, nullable=False, index=True)  # customer/mechanic/admin
    is_available = Column(Boolean, nullable=False, default=True)
    average_rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)


class ServiceListing(Base):
    """Catalog listing offered by a mechanic."""

    __tablename__ = "service_listings"

    id = Column(Integer, primary_key=True)
    mechanic_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    category = Column(String, nullable=False, default="Other")
    base_price = Column(Float, nullable=False)
    estimated_duration = Column(Integer, nullable=True)  # minutes
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_bookings_base_price"),
        CheckConstraint("total_amount >= base_price", name="ck_bookings_total_amount"),
        Index(
            "uq_bookings_mechanic_active_date",
            "mechanic_id",
            "scheduled_date",
            unique=True,
            postgresql_where=text(_ACTIVE_SQL),
            sqlite_where=text(_ACTIVE_SQL),
        ),
    )

    id = Column(Integer, primary_key=True)
    booking_number = Column(String, unique=True, nullable=False, index=True)

    service_id = Column(Integer, ForeignKey("service_listings.id"), nullable=False, index=True)
    mechanic_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # HH:MM
    estimated_duration = Column(Integer, nullable=True)

    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_instructions = Column(String, nullable=True)

    service_requirements = Column(JSON, nullable=False, default=list)
    customer_notes = Column(String(500), nullable=True)

    base_price = Column(Float, nullable=False)
    additional_charges = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, nullable=False)

    status = Column(String, nullable=False, index=True, default=INITIAL_STATUS)

    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)
    actual_duration = Column(Integer, nullable=True)

    payment_status = Column(String, nullable=False, index=True, default=PAYMENT_PENDING)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String, nullable=False, default=PAYMENT_METHOD_DEFAULT)
    payment_transaction_id = Column(String, nullable=True)
    payment_gateway = Column(String, nullable=True)

    cancellation_reason = Column(String, nullable=True)
    cancellation_fee = Column(Float, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    dispute_reason = Column(String, nullable=True)
    dispute_status = Column(String, nullable=False, default=DISPUTE_NONE)
    dispute_resolution = Column(String, nullable=True)

    customer_rating = Column(Integer, nullable=True)
    customer_review = Column(Text, nullable=True)
    review_date = Column(DateTime(timezone=True), nullable=True)

    # single outstanding reschedule negotiation
    reschedule_requested_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reschedule_requested_at = Column(DateTime(timezone=True), nullable=True)
    reschedule_old_date = Column(Date, nullable=True)
    reschedule_old_time = Column(String(5), nullable=True)
    reschedule_new_date = Column(Date, nullable=True)
    reschedule_new_time = Column(String(5), nullable=True)
    reschedule_status = Column(String, nullable=False, default=RESCHEDULE_NONE)
    reschedule_responded_at = Column(DateTime(timezone=True), nullable=True)
    reschedule_responded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reschedule_note = Column(String, nullable=True)

    # single outstanding refund negotiation
    is_refunded = Column(Boolean, nullable=False, default=False)
    refund_amount = Column(Float, nullable=True)
    refund_reason = Column(String, nullable=True)
    refund_status = Column(String, nullable=False, default=REFUND_NONE)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refunded_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    status_history = relationship(
        "BookingStatusEntry",
        order_by="BookingStatusEntry.id",
        lazy="selectin",
        back_populates="booking",
    )

    # summaries of the related records, embedded in every booking response
    service = relationship("ServiceListing", lazy="selectin")
    mechanic = relationship("User", foreign_keys=[mechanic_id], lazy="selectin")
    customer = relationship("User", foreign_keys=[customer_id], lazy="selectin")


class BookingStatusEntry(Base):
    """Append-only audit row, one per status change."""

    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    note = Column(String, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    booking = relationship("Booking", back_populates="status_history")
