from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    # existing bookings were all settled in cash
    op.add_column(
        "bookings",
        sa.Column("payment_method", sa.String(), nullable=False, server_default="cash"),
    )
    op.add_column("bookings", sa.Column("payment_transaction_id", sa.String(), nullable=True))
    op.add_column("bookings", sa.Column("payment_gateway", sa.String(), nullable=True))


def downgrade():
    op.drop_column("bookings", "payment_gateway")
    op.drop_column("bookings", "payment_transaction_id")
    op.drop_column("bookings", "payment_method")
