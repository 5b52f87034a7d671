"""m1 bar schema

Revision ID: 5c1f0a7d2e93
Revises: 
Create Date: 2025-03-01 12:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '5c1f0a7d2e93'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


WEEKDAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled", "no_show")
MEETING_TYPES = ("business", "social", "celebration", "networking", "other")


def upgrade() -> None:
    op.create_table(
        "category",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )
    op.create_table(
        "product",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("category.id"), nullable=False),
        sa.Column("available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("alcoholic", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("image_url", sa.String(500)),
    )
    op.create_table(
        "client",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(15), nullable=False, unique=True),
        sa.Column("email", sa.String(254), unique=True),
        sa.Column("company", sa.String(200)),
    )
    op.create_table(
        "reservation",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("client_id", sa.Integer, sa.ForeignKey("client.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reservation_date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("party_size", sa.Integer, nullable=False),
        sa.Column(
            "meeting_type",
            sa.Enum(*MEETING_TYPES, name="meeting_type", native_enum=False, create_constraint=True, length=32),
            nullable=False,
            server_default="business",
        ),
        sa.Column("reason", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum(*STATUSES, name="reservation_status", native_enum=False, create_constraint=True, length=32),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("start_time < end_time", name="reservation_time_order"),
    )
    op.create_index("ix_reservation_client_id", "reservation", ["client_id"])
    op.create_index("ix_reservation_reservation_date", "reservation", ["reservation_date"])
    op.create_table(
        "operating_hours",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "weekday",
            sa.Enum(*WEEKDAYS, name="weekday", native_enum=False, create_constraint=True, length=32),
            nullable=False,
        ),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text),
        sa.CheckConstraint("start_time < end_time", name="operating_hours_time_order"),
    )
    op.create_index("ix_operating_hours_weekday", "operating_hours", ["weekday"])
    op.create_table(
        "app_setting",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
    )
    op.execute("INSERT INTO app_setting (key, value) VALUES ('max_capacity', '50')")

    if op.get_bind().dialect.name == "postgresql":
        # Two active bookings may never share an instant on the same date.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist;")
        op.execute(
            """
            ALTER TABLE reservation
              ADD CONSTRAINT reservation_no_overlap
              EXCLUDE USING gist (
                reservation_date WITH =,
                tsrange(reservation_date + start_time, reservation_date + end_time, '[)') WITH &&
              )
              WHERE (status IN ('confirmed', 'in_progress'));
            """
        )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TABLE reservation DROP CONSTRAINT IF EXISTS reservation_no_overlap;")
    op.drop_table("app_setting")
    op.drop_index("ix_operating_hours_weekday", table_name="operating_hours")
    op.drop_table("operating_hours")
    op.drop_index("ix_reservation_reservation_date", table_name="reservation")
    op.drop_index("ix_reservation_client_id", table_name="reservation")
    op.drop_table("reservation")
    op.drop_table("client")
    op.drop_table("product")
    op.drop_table("category")
