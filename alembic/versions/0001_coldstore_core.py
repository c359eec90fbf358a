"""coldstore core tables: catalog, storage, stock, orders, audit, event bus

Revision ID: 0001_coldstore_core
Revises:
Create Date: 2026-10-18T09:00:00.000000Z
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_coldstore_core"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now())


def upgrade():
    op.create_table(
        "cs_product",
        _id(),
        _created_at(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("manufacturer", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=24), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
    )
    op.create_index("ix_cs_product_name", "cs_product", ["name"], unique=True)
    op.create_index("ix_cs_product_category", "cs_product", ["category"])

    op.create_table(
        "cs_storage_location",
        _id(),
        _created_at(),
        sa.Column("zone", sa.String(length=50), nullable=False),
        sa.Column("rack", sa.String(length=50), nullable=False),
        sa.Column("slot", sa.String(length=50), nullable=False),
        sa.Column("location_type", sa.String(length=24), nullable=False),
        sa.Column("size_type", sa.String(length=50), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("current_occupancy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_temp", sa.Numeric(5, 2), nullable=True),
        sa.Column("max_temp", sa.Numeric(5, 2), nullable=True),
        sa.Column("latest_temperature", sa.Numeric(5, 2), nullable=True),
        sa.Column("last_temp_update", sa.DateTime(timezone=False), nullable=True),
        sa.UniqueConstraint("zone", "rack", "slot", name="uq_location_zone_rack_slot"),
        sa.CheckConstraint("capacity > 0", name="ck_location_capacity_positive"),
        sa.CheckConstraint(
            "current_occupancy >= 0 AND current_occupancy <= capacity",
            name="ck_location_occupancy_bounds",
        ),
    )
    op.create_index("ix_cs_storage_location_location_type", "cs_storage_location", ["location_type"])

    op.create_table(
        "cs_temperature_log",
        _id(),
        sa.Column("location_id", sa.String(length=36),
                  sa.ForeignKey("cs_storage_location.id", ondelete="CASCADE"), nullable=False),
        sa.Column("temperature_reading", sa.Numeric(5, 2), nullable=False),
        sa.Column("humidity_reading", sa.Numeric(5, 2), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_cs_temperature_log_location_id", "cs_temperature_log", ["location_id"])
    op.create_index("ix_temp_log_location_time", "cs_temperature_log", ["location_id", "recorded_at"])

    op.create_table(
        "cs_batch",
        _id(),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("product_id", sa.String(length=36),
                  sa.ForeignKey("cs_product.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_number", sa.String(length=255), nullable=False, unique=True),
        sa.Column("manufacture_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(length=255), nullable=False, unique=True),
        sa.Column("assigned_location_id", sa.String(length=36),
                  sa.ForeignKey("cs_storage_location.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="Available"),
        sa.CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),
    )
    op.create_index("ix_cs_batch_product_id", "cs_batch", ["product_id"])
    op.create_index("ix_cs_batch_assigned_location_id", "cs_batch", ["assigned_location_id"])
    op.create_index("ix_batch_fefo", "cs_batch", ["product_id", "status", "expiry_date"])

    op.create_table(
        "cs_order",
        _id(),
        sa.Column("order_date", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="Pending"),
    )
    op.create_index("ix_cs_order_order_date", "cs_order", ["order_date"])
    op.create_index("ix_cs_order_status", "cs_order", ["status"])

    op.create_table(
        "cs_order_item",
        _id(),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("cs_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(length=36),
                  sa.ForeignKey("cs_product.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )
    op.create_index("ix_cs_order_item_order_id", "cs_order_item", ["order_id"])
    op.create_index("ix_cs_order_item_product_id", "cs_order_item", ["product_id"])

    op.create_table(
        "cs_pick",
        _id(),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("cs_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("batch_id", sa.String(length=36), sa.ForeignKey("cs_batch.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity_picked", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="Pending Pick"),
        sa.Column("picked_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "batch_id", name="uq_pick_order_batch"),
    )
    op.create_index("ix_cs_pick_order_id", "cs_pick", ["order_id"])
    op.create_index("ix_cs_pick_batch_id", "cs_pick", ["batch_id"])

    op.create_table(
        "cs_dispatch",
        _id(),
        _created_at(),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("cs_order.id", ondelete="CASCADE"),
                  nullable=False, unique=True),
        sa.Column("dispatched_by", sa.String(length=255), nullable=False),
        sa.Column("dispatch_date", sa.Date(), nullable=False),
    )

    op.create_table(
        "sys_audit_log",
        _id(),
        _created_at(),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payload", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_entity_time", "sys_audit_log", ["entity_type", "entity_id", "created_at"])

    op.create_table(
        "outbox_event",
        _id(),
        _created_at(),
        sa.Column("topic", sa.String(length=128), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("priority", sa.SmallInteger(), nullable=False, server_default="100"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivered_at", sa.DateTime(timezone=False), nullable=True),
    )
    op.create_index("ix_outbox_event_topic", "outbox_event", ["topic"])
    op.create_index("ix_outbox_subject_created", "outbox_event", ["subject_id", "created_at"])
    op.create_index("ix_outbox_due", "outbox_event", ["delivered", "priority", "available_at"])

    op.create_table(
        "event_subscription",
        _id(),
        _created_at(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("topic_pattern", sa.String(length=128), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=False),
        sa.Column("headers", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_failures", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_delivered_at", sa.DateTime(timezone=False), nullable=True),
    )
    op.create_index("ix_event_subscription_is_active", "event_subscription", ["is_active"])


def downgrade():
    op.drop_table("event_subscription")
    op.drop_table("outbox_event")
    op.drop_table("sys_audit_log")
    op.drop_table("cs_dispatch")
    op.drop_table("cs_pick")
    op.drop_table("cs_order_item")
    op.drop_table("cs_order")
    op.drop_table("cs_batch")
    op.drop_table("cs_temperature_log")
    op.drop_table("cs_storage_location")
    op.drop_table("cs_product")
