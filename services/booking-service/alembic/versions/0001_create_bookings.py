from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_SQL = "status IN ('pending', 'confirmed', 'in_progress')"


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_reviews", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "service_listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("mechanic_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False, server_default="Other"),
        sa.Column("base_price", sa.Float(), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_service_listings_mechanic_id", "service_listings", ["mechanic_id"], unique=False)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_number", sa.String(), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("service_listings.id"), nullable=False),
        sa.Column("mechanic_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(5), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_instructions", sa.String(), nullable=True),
        sa.Column("service_requirements", sa.JSON(), nullable=False),
        sa.Column("customer_notes", sa.String(500), nullable=True),
        sa.Column("base_price", sa.Float(), nullable=False),
        sa.Column("additional_charges", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("cancellation_fee", sa.Float(), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_reason", sa.String(), nullable=True),
        sa.Column("dispute_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("dispute_resolution", sa.String(), nullable=True),
        sa.Column("customer_rating", sa.Integer(), nullable=True),
        sa.Column("customer_review", sa.Text(), nullable=True),
        sa.Column("review_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_requested_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reschedule_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_old_date", sa.Date(), nullable=True),
        sa.Column("reschedule_old_time", sa.String(5), nullable=True),
        sa.Column("reschedule_new_date", sa.Date(), nullable=True),
        sa.Column("reschedule_new_time", sa.String(5), nullable=True),
        sa.Column("reschedule_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("reschedule_responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_responded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reschedule_note", sa.String(), nullable=True),
        sa.Column("is_refunded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("refund_amount", sa.Float(), nullable=True),
        sa.Column("refund_reason", sa.String(), nullable=True),
        sa.Column("refund_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("base_price >= 0", name="ck_bookings_base_price"),
        sa.CheckConstraint("total_amount >= base_price", name="ck_bookings_total_amount"),
    )
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"], unique=True)
    op.create_index("ix_bookings_service_id", "bookings", ["service_id"], unique=False)
    op.create_index("ix_bookings_mechanic_id", "bookings", ["mechanic_id"], unique=False)
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"], unique=False)
    op.create_index("ix_bookings_scheduled_date", "bookings", ["scheduled_date"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"], unique=False)
    op.create_index("ix_bookings_created_at", "bookings", ["created_at"], unique=False)
    op.create_index(
        "uq_bookings_mechanic_active_date",
        "bookings",
        ["mechanic_id", "scheduled_date"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_SQL),
        sqlite_where=sa.text(ACTIVE_SQL),
    )

    op.create_table(
        "booking_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
    )
    op.create_index("ix_booking_status_history_booking_id", "booking_status_history", ["booking_id"], unique=False)


def downgrade():
    op.drop_index("ix_booking_status_history_booking_id", table_name="booking_status_history")
    op.drop_table("booking_status_history")

    op.drop_index("uq_bookings_mechanic_active_date", table_name="bookings")
    op.drop_index("ix_bookings_created_at", table_name="bookings")
    op.drop_index("ix_bookings_payment_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_scheduled_date", table_name="bookings")
    op.drop_index("ix_bookings_customer_id", table_name="bookings")
    op.drop_index("ix_bookings_mechanic_id", table_name="bookings")
    op.drop_index("ix_bookings_service_id", table_name="bookings")
    op.drop_index("ix_bookings_booking_number", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_service_listings_mechanic_id", table_name="service_listings")
    op.drop_table("service_listings")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
