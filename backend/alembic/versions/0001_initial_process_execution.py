"""Initial schema: reference tables, process execution, quality, daily checks.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _id():
    return sa.Column("id", sa.Integer(), primary_key=True)


def _created():
    return sa.Column("created_at", sa.DateTime(), server_default=sa.func.now())


def _updated():
    return sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now())


def _step_run_fk():
    return sa.Column(
        "process_step_run_id", sa.Integer(),
        sa.ForeignKey("process_step_runs.id"), nullable=False, index=True,
    )


def _packaging_run_fk():
    return sa.Column(
        "packaging_run_id", sa.Integer(),
        sa.ForeignKey("process_packaging_runs.id"), nullable=False, index=True,
    )


def upgrade() -> None:
    # ── Reference data ───────────────────────────────────────
    op.create_table(
        "units",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("symbol", sa.String(20)),
    )
    op.create_table(
        "products",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), index=True),
        sa.Column("reorder_point", sa.Float()),
        sa.Column("safety_stock", sa.Float()),
        sa.Column("target_stock", sa.Float()),
        sa.Column("base_unit_id", sa.Integer(), sa.ForeignKey("units.id")),
        _created(),
    )
    op.create_table(
        "warehouses",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
    )
    op.create_table(
        "suppliers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_halal_certified", sa.Boolean(), server_default=sa.false()),
    )
    op.create_table(
        "customers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
    )
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("hashed_password", sa.String(255)),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "PLANNER", "QA", "VIEWER", name="userrole"),
            server_default="VIEWER",
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("custom_permissions", sa.JSON()),
        _created(),
        _updated(),
    )
    op.create_table(
        "activity_logs",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("user_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False, index=True),
    )

    # ── Supply / inventory ───────────────────────────────────
    op.create_table(
        "supply_batches",
        _id(),
        sa.Column("lot_no", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id")),
        sa.Column("received_qty", sa.Float()),
        sa.Column("accepted_qty", sa.Float()),
        sa.Column("rejected_qty", sa.Float(), server_default="0"),
        sa.Column("current_qty", sa.Float(), server_default="0"),
        sa.Column("process_status", sa.String(30), server_default="UNPROCESSED", index=True),
        sa.Column("quality_status", sa.String(30), server_default="PENDING"),
        sa.Column("expiry_date", sa.Date()),
        _created(),
        _updated(),
    )
    op.create_table(
        "shipments",
        _id(),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id")),
        sa.Column("doc_status", sa.String(30), server_default="PENDING", index=True),
        _created(),
    )
    op.create_table(
        "stock_levels",
        _id(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), index=True),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id")),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("units.id")),
        sa.Column("on_hand", sa.Float()),
        sa.Column("allocated", sa.Float()),
        sa.Column("quality_hold", sa.Float()),
        sa.Column("in_transit", sa.Float()),
        sa.Column("available", sa.Float()),
        sa.Column("reorder_point", sa.Float()),
        sa.Column("safety_stock", sa.Float()),
        sa.Column("last_updated", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Process definitions ──────────────────────────────────
    op.create_table(
        "processes",
        _id(),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("product_ids", sa.JSON()),
        _created(),
    )
    op.create_table(
        "product_processes",
        _id(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False, index=True),
        sa.Column("process_id", sa.Integer(), sa.ForeignKey("processes.id"), nullable=False),
        sa.Column("is_default", sa.Boolean(), server_default=sa.false()),
    )
    op.create_table(
        "process_step_names",
        _id(),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
    )
    op.create_table(
        "process_steps",
        _id(),
        sa.Column("process_id", sa.Integer(), sa.ForeignKey("processes.id"), nullable=False, index=True),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("step_name_id", sa.Integer(), sa.ForeignKey("process_step_names.id")),
        sa.Column("step_code", sa.String(50)),
        sa.Column("description", sa.Text()),
        sa.Column("requires_qc", sa.Boolean(), server_default=sa.false()),
        sa.Column("can_be_skipped", sa.Boolean(), server_default=sa.false()),
        sa.Column("default_location_id", sa.Integer(), sa.ForeignKey("warehouses.id")),
        sa.Column("estimated_duration", sa.Integer()),
    )

    # ── Execution ────────────────────────────────────────────
    op.create_table(
        "process_lot_runs",
        _id(),
        sa.Column("supply_batch_id", sa.Integer(), sa.ForeignKey("supply_batches.id"), nullable=False, index=True),
        sa.Column("process_id", sa.Integer(), sa.ForeignKey("processes.id"), nullable=False),
        sa.Column("status", sa.String(30), server_default="IN_PROGRESS", index=True),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("is_rework", sa.Boolean(), server_default=sa.false()),
        sa.Column("original_process_lot_run_id", sa.Integer(), sa.ForeignKey("process_lot_runs.id")),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_step_runs",
        _id(),
        sa.Column("process_lot_run_id", sa.Integer(), sa.ForeignKey("process_lot_runs.id"), nullable=False, index=True),
        sa.Column("process_step_id", sa.Integer(), sa.ForeignKey("process_steps.id"), nullable=False),
        sa.Column("status", sa.String(30), server_default="PENDING"),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("performed_by", sa.String(36)),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("warehouses.id")),
        sa.Column("skipped_at", sa.DateTime()),
        sa.Column("skipped_by", sa.String(36)),
    )
    op.create_table(
        "production_batches",
        _id(),
        sa.Column("batch_code", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("process_lot_run_id", sa.Integer(), sa.ForeignKey("process_lot_runs.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Float(), server_default="0"),
        sa.Column("unit", sa.String(20)),
        sa.Column("expiry_date", sa.Date()),
        _created(),
    )

    # ── Step details ─────────────────────────────────────────
    op.create_table(
        "process_washing_runs",
        _id(),
        _step_run_fk(),
        sa.Column("washing_water_litres", sa.Float()),
        sa.Column("oxy_acid_ml", sa.Float()),
        sa.Column("moisture_percent", sa.Float()),
        sa.Column("remarks", sa.Text()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_washing_waste",
        _id(),
        sa.Column("washing_run_id", sa.Integer(), sa.ForeignKey("process_washing_runs.id"), nullable=False, index=True),
        sa.Column("waste_type", sa.String(100), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("remarks", sa.Text()),
        _created(),
    )
    op.create_table(
        "process_drying_runs",
        _id(),
        _step_run_fk(),
        sa.Column("dryer_temperature_c", sa.Float()),
        sa.Column("time_in", sa.DateTime()),
        sa.Column("time_out", sa.DateTime()),
        sa.Column("moisture_in", sa.Float()),
        sa.Column("moisture_out", sa.Float()),
        sa.Column("crates_clean", sa.String(5)),
        sa.Column("insect_infestation", sa.String(5)),
        sa.Column("dryer_hygiene_clean", sa.String(5)),
        sa.Column("remarks", sa.Text()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_drying_waste",
        _id(),
        sa.Column("drying_run_id", sa.Integer(), sa.ForeignKey("process_drying_runs.id"), nullable=False, index=True),
        sa.Column("waste_type", sa.String(100), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("remarks", sa.Text()),
        _created(),
    )
    op.create_table(
        "process_sorting_outputs",
        _id(),
        _step_run_fk(),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("moisture_percent", sa.Float()),
        sa.Column("remarks", sa.Text()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_sorting_waste",
        _id(),
        sa.Column("sorting_run_id", sa.Integer(), sa.ForeignKey("process_sorting_outputs.id"), nullable=False, index=True),
        sa.Column("waste_type", sa.String(100), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        _created(),
    )
    op.create_table(
        "process_metal_detector",
        _id(),
        _step_run_fk(),
        sa.Column("start_time", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("end_time", sa.DateTime()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_foreign_object_rejections",
        _id(),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("process_metal_detector.id"), nullable=False, index=True),
        sa.Column("rejection_time", sa.DateTime(), nullable=False),
        sa.Column("object_type", sa.String(100), nullable=False),
        sa.Column("weight", sa.Float()),
        sa.Column("corrective_action", sa.Text()),
        _created(),
    )
    op.create_table(
        "process_metal_detector_waste",
        _id(),
        _step_run_fk(),
        sa.Column("waste_type", sa.String(100), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("remarks", sa.Text()),
        _created(),
    )

    # ── Rework audit trail ───────────────────────────────────
    op.create_table(
        "reworked_lots",
        _id(),
        sa.Column("original_supply_batch_id", sa.Integer(), sa.ForeignKey("supply_batches.id"), nullable=False),
        sa.Column("rework_supply_batch_id", sa.Integer(), sa.ForeignKey("supply_batches.id"), nullable=False),
        sa.Column("sorting_output_id", sa.Integer(), sa.ForeignKey("process_sorting_outputs.id")),
        _step_run_fk(),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        _created(),
    )
    op.create_table(
        "batch_step_transitions",
        _id(),
        sa.Column("manufacturing_batch_id", sa.Integer(), nullable=False, index=True),
        sa.Column("from_step", sa.String(50)),
        sa.Column("to_step", sa.String(50), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        _created(),
    )

    # ── Quality ──────────────────────────────────────────────
    op.create_table(
        "process_measurements",
        _id(),
        _step_run_fk(),
        sa.Column("metric", sa.String(30), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "process_non_conformances",
        _id(),
        _step_run_fk(),
        sa.Column("nc_type", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("corrective_action", sa.Text()),
        sa.Column("resolved", sa.Boolean(), server_default=sa.false(), index=True),
        sa.Column("resolved_at", sa.DateTime()),
        _created(),
    )
    # No unique (process_lot_run_id, role, signed_by): duplicates are
    # checked by the service only
    op.create_table(
        "process_signoffs",
        _id(),
        sa.Column("process_lot_run_id", sa.Integer(), sa.ForeignKey("process_lot_runs.id"), nullable=False, index=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("signed_by", sa.String(36), nullable=False),
        sa.Column("signed_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Packaging ────────────────────────────────────────────
    op.create_table(
        "process_packaging_runs",
        _id(),
        _step_run_fk(),
        sa.Column("visual_status", sa.String(50)),
        sa.Column("rework_destination", sa.String(100)),
        sa.Column("pest_status", sa.String(50)),
        sa.Column("foreign_object_status", sa.String(50)),
        sa.Column("mould_status", sa.String(50)),
        sa.Column("damaged_kernels_pct", sa.Float()),
        sa.Column("insect_damaged_kernels_pct", sa.Float()),
        sa.Column("nitrogen_used", sa.Float()),
        sa.Column("nitrogen_batch_number", sa.String(100)),
        sa.Column("primary_packaging_type", sa.String(100)),
        sa.Column("primary_packaging_batch", sa.String(100)),
        sa.Column("secondary_packaging", sa.String(100)),
        sa.Column("secondary_packaging_type", sa.String(100)),
        sa.Column("secondary_packaging_batch", sa.String(100)),
        sa.Column("label_correct", sa.String(5)),
        sa.Column("label_legible", sa.String(5)),
        sa.Column("pallet_integrity", sa.String(5)),
        sa.Column("allergen_swab_result", sa.String(100)),
        sa.Column("remarks", sa.Text()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_packaging_weight_checks",
        _id(),
        _packaging_run_fk(),
        sa.Column("check_no", sa.Integer(), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        _created(),
    )
    op.create_table(
        "process_packaging_photos",
        _id(),
        _packaging_run_fk(),
        sa.Column("photo_type", sa.String(20), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        _created(),
    )
    op.create_table(
        "process_packaging_waste",
        _id(),
        _packaging_run_fk(),
        sa.Column("waste_type", sa.String(100), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        _created(),
    )
    op.create_table(
        "process_packaging_metal_checks",
        _id(),
        _packaging_run_fk(),
        sa.Column("sorting_output_id", sa.Integer(), sa.ForeignKey("process_sorting_outputs.id"), nullable=False, index=True),
        sa.Column("attempt_no", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("remarks", sa.Text()),
        sa.Column("checked_by", sa.String(36)),
        sa.Column("checked_at", sa.DateTime(), server_default=sa.func.now()),
        _created(),
        _updated(),
    )
    op.create_table(
        "process_packaging_metal_check_rejections",
        _id(),
        sa.Column("metal_check_id", sa.Integer(), sa.ForeignKey("process_packaging_metal_checks.id"), nullable=False, index=True),
        sa.Column("object_type", sa.String(100), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("corrective_action", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        _created(),
    )
    op.create_table(
        "process_packaging_pack_entries",
        _id(),
        _packaging_run_fk(),
        sa.Column("sorting_output_id", sa.Integer(), sa.ForeignKey("process_sorting_outputs.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id")),
        sa.Column("pack_identifier", sa.String(50), nullable=False),
        sa.Column("quantity_kg", sa.Float(), nullable=False),
        sa.Column("packing_type", sa.String(50)),
        sa.Column("pack_size_kg", sa.Float()),
        sa.Column("pack_count", sa.Integer()),
        sa.Column("remainder_kg", sa.Float()),
        sa.Column("metal_check_status", sa.String(10)),
        sa.Column("metal_check_attempts", sa.Integer(), server_default="0"),
        sa.Column("metal_check_last_id", sa.Integer()),
        sa.Column("metal_check_last_checked_at", sa.DateTime()),
        sa.Column("metal_check_last_checked_by", sa.String(36)),
        _created(),
    )
    op.create_table(
        "process_packaging_storage_allocations",
        _id(),
        _packaging_run_fk(),
        sa.Column("pack_entry_id", sa.Integer(), sa.ForeignKey("process_packaging_pack_entries.id"), nullable=False, index=True),
        sa.Column("storage_type", sa.String(20), nullable=False),
        sa.Column("box_unit_code", sa.String(50)),
        sa.Column("units_count", sa.Integer(), nullable=False),
        sa.Column("packs_per_unit", sa.Integer(), nullable=False),
        sa.Column("total_packs", sa.Integer(), nullable=False),
        sa.Column("total_quantity_kg", sa.Float(), server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        _created(),
        _updated(),
    )

    # ── Daily checks ─────────────────────────────────────────
    op.create_table(
        "daily_checks",
        _id(),
        sa.Column("check_date", sa.Date(), nullable=False, index=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("item_key", sa.String(50), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("completed", sa.Boolean(), server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("completed_by", sa.String(36)),
        sa.UniqueConstraint("check_date", "item_key", name="uq_daily_check_item"),
    )


def downgrade() -> None:
    for table in (
        "daily_checks",
        "process_packaging_storage_allocations",
        "process_packaging_pack_entries",
        "process_packaging_metal_check_rejections",
        "process_packaging_metal_checks",
        "process_packaging_waste",
        "process_packaging_photos",
        "process_packaging_weight_checks",
        "process_packaging_runs",
        "process_signoffs",
        "process_non_conformances",
        "process_measurements",
        "batch_step_transitions",
        "reworked_lots",
        "process_metal_detector_waste",
        "process_foreign_object_rejections",
        "process_metal_detector",
        "process_sorting_waste",
        "process_sorting_outputs",
        "process_drying_waste",
        "process_drying_runs",
        "process_washing_waste",
        "process_washing_runs",
        "production_batches",
        "process_step_runs",
        "process_lot_runs",
        "process_steps",
        "process_step_names",
        "product_processes",
        "processes",
        "stock_levels",
        "shipments",
        "supply_batches",
        "activity_logs",
        "user_profiles",
        "customers",
        "suppliers",
        "warehouses",
        "products",
        "units",
    ):
        op.drop_table(table)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
