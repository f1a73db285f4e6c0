"""Initial schema: classes, bookings, audit logs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_CLAUSE = sa.text("status IN ('confirmed', 'waitlisted')")


def upgrade() -> None:
    class_category = sa.Enum(
        "snowboard",
        "ski",
        "yoga",
        "pilates",
        "hiit",
        "strength",
        "cycling",
        "dance",
        name="classcategory",
    )
    class_level = sa.Enum(
        "beginner",
        "intermediate",
        "advanced",
        "expert",
        "all_levels",
        name="classlevel",
    )
    op.create_table(
        "classes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("instructor_id", sa.String(length=128), nullable=False),
        sa.Column("venue_id", sa.String(length=128)),
        sa.Column("category", class_category, nullable=False),
        sa.Column("level", class_level),
        sa.Column("starts_at", sa.DateTime(timezone=True)),
        sa.Column("duration_min", sa.Integer()),
        sa.Column("price", sa.Numeric(10, 2)),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.String(length=512)),
        sa.Column("tags", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("max_participants > 0", name="ck_class_capacity_positive"),
        sa.CheckConstraint("current_participants >= 0", name="ck_class_participants_non_negative"),
        sa.CheckConstraint(
            "current_participants <= max_participants",
            name="ck_class_participants_within_capacity",
        ),
    )
    op.create_index("ix_classes_name", "classes", ["name"])
    op.create_index("ix_classes_instructor_id", "classes", ["instructor_id"])
    op.create_index("ix_classes_venue_id", "classes", ["venue_id"])
    op.create_index("ix_classes_starts_at", "classes", ["starts_at"])

    booking_status = sa.Enum("confirmed", "waitlisted", "cancelled", name="bookingstatus")
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "class_id",
            sa.String(length=36),
            sa.ForeignKey("classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.String(length=128)),
        sa.Column("cancellation_reason", sa.String(length=255)),
    )
    op.create_index(
        "uq_booking_active_user_class",
        "bookings",
        ["class_id", "user_id"],
        unique=True,
        sqlite_where=_ACTIVE_CLAUSE,
        postgresql_where=_ACTIVE_CLAUSE,
    )
    op.create_index(
        "ix_booking_class_status_created", "bookings", ["class_id", "status", "created_at"]
    )
    op.create_index("ix_booking_user_status", "bookings", ["user_id", "status"])

    actor_type = sa.Enum("user", "instructor", "system", name="actortype")
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_type", actor_type),
        sa.Column("actor_id", sa.String(length=128)),
        sa.Column("action", sa.String(length=255)),
        sa.Column("payload", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_index("ix_booking_user_status", table_name="bookings")
    op.drop_index("ix_booking_class_status_created", table_name="bookings")
    op.drop_index("uq_booking_active_user_class", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_classes_starts_at", table_name="classes")
    op.drop_index("ix_classes_venue_id", table_name="classes")
    op.drop_index("ix_classes_instructor_id", table_name="classes")
    op.drop_index("ix_classes_name", table_name="classes")
    op.drop_table("classes")
    sa.Enum(name="actortype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="bookingstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="classlevel").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="classcategory").drop(op.get_bind(), checkfirst=True)
