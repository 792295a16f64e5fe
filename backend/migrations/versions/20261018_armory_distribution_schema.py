"""Armory, stock lines, distributions, renewals and audit ledger

Revision ID: 20261018_armory_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_armory_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "officers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("service_no", sa.String(32), nullable=False),
        sa.Column("rank", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("officers", schema=None) as batch_op:
        batch_op.create_index("ix_officers_service_no", ["service_no"], unique=True)

    op.create_table(
        "armories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("armories", schema=None) as batch_op:
        batch_op.create_index("ix_armories_reference_id", ["reference_id"], unique=True)
        batch_op.create_index("ix_armories_unit_status", ["unit", "status"], unique=False)

    op.create_table(
        "stock_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("armory_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_key", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("condition", sa.String(32), nullable=False, server_default="serviceable"),
        sa.Column("weapon_type", sa.String(64), nullable=True),
        sa.Column("serial_or_batch", sa.String(128), nullable=True),
        sa.Column("manufacturer", sa.String(128), nullable=True),
        sa.Column("caliber", sa.String(32), nullable=True),
        sa.Column("ammo_type", sa.String(32), nullable=True),
        sa.Column("unit_of_measure", sa.String(16), nullable=True),
        sa.Column("lot_number", sa.String(64), nullable=True),
        sa.Column("equipment_type", sa.String(64), nullable=True),
        sa.Column("size", sa.String(16), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["armory_id"], ["armories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("armory_id", "item_type", "item_key", name="uq_stock_lines_armory_type_key"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_lines_quantity_nonnegative"),
        sa.CheckConstraint("quantity <= total_quantity", name="ck_stock_lines_quantity_le_total"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_lines", schema=None) as batch_op:
        batch_op.create_index("ix_stock_lines_armory_id", ["armory_id"], unique=False)

    op.create_table(
        "distributions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("distribution_no", sa.String(64), nullable=False),
        sa.Column("armory_id", sa.Integer(), nullable=False),
        sa.Column("officer_id", sa.Integer(), nullable=False),
        sa.Column("squad_name", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="issued"),
        sa.Column("renewal_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("date_issued", sa.DateTime(timezone=True), nullable=False),
        sa.Column("renewal_due", sa.DateTime(timezone=True), nullable=False),
        sa.Column("return_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_by", sa.String(64), nullable=False),
        sa.Column("returned_by", sa.String(64), nullable=True),
        sa.Column("cancelled_by", sa.String(64), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["armory_id"], ["armories.id"]),
        sa.ForeignKeyConstraint(["officer_id"], ["officers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("distribution_no", name="uq_distributions_distribution_no"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("distributions", schema=None) as batch_op:
        batch_op.create_index("ix_distributions_armory_id", ["armory_id"], unique=False)
        batch_op.create_index("ix_distributions_officer_id", ["officer_id"], unique=False)
        batch_op.create_index("ix_distributions_status", ["status"], unique=False)
        batch_op.create_index("ix_distributions_armory_status", ["armory_id", "status"], unique=False)
        batch_op.create_index("ix_distributions_status_renewal_due", ["status", "renewal_due"], unique=False)

    op.create_table(
        "issued_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("distribution_id", sa.Integer(), nullable=False),
        sa.Column("stock_line_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_key", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("condition_at_issue", sa.String(32), nullable=False),
        sa.Column("condition_at_return", sa.String(32), nullable=True),
        sa.Column("item_snapshot", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["distribution_id"], ["distributions.id"]),
        sa.ForeignKeyConstraint(["stock_line_id"], ["stock_lines.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("distribution_id", "item_type", "item_key", name="uq_issued_items_distribution_type_key"),
        sa.CheckConstraint("quantity > 0", name="ck_issued_items_quantity_positive"),
        sa.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_issued_items_returned_within_quantity",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("issued_items", schema=None) as batch_op:
        batch_op.create_index("ix_issued_items_distribution_id", ["distribution_id"], unique=False)
        batch_op.create_index("ix_issued_items_stock_line_id", ["stock_line_id"], unique=False)

    op.create_table(
        "renewal_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("distribution_id", sa.Integer(), nullable=False),
        sa.Column("renewed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("renewed_by", sa.String(64), nullable=False),
        sa.Column("next_renewal_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("condition", sa.String(32), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["distribution_id"], ["distributions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("renewal_records", schema=None) as batch_op:
        batch_op.create_index("ix_renewal_records_distribution_id", ["distribution_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("armory_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["armory_id"], ["armories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("armory_id", "document_type", name="uq_document_sequences_armory_type"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_armory_id", ["armory_id"], unique=False)

    op.create_table(
        "armory_ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("armory_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("distribution_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["armory_id"], ["armories.id"]),
        sa.ForeignKeyConstraint(["distribution_id"], ["distributions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("armory_ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_armory_ledger_events_armory_id", ["armory_id"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_event_category", ["event_category"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_distribution_id", ["distribution_id"], unique=False)
        batch_op.create_index("ix_armory_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_armory_ledger_armory_occurred", ["armory_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("armory_ledger_events")
    op.drop_table("document_sequences")
    op.drop_table("renewal_records")
    op.drop_table("issued_items")
    op.drop_table("distributions")
    op.drop_table("stock_lines")
    op.drop_table("armories")
    op.drop_table("officers")
