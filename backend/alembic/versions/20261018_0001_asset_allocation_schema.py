"""Initial schema for the asset allocation backend."""

from __future__ import annotations

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _dialect_name() -> str:
    bind = op.get_bind()
    if bind is not None:
        return bind.dialect.name
    ctx = context.get_context()
    return ctx.dialect.name if ctx is not None else ""


def upgrade() -> None:
    uuid_type = sa.CHAR(length=36)
    if _dialect_name() == "postgresql":
        uuid_type = postgresql.UUID(as_uuid=True)

    product_category_enum = sa.Enum(
        "hardware",
        "software",
        name="product_category_enum",
        native_enum=False,
    )
    software_type_enum = sa.Enum(
        "operating_system",
        "application",
        "utility",
        "driver",
        name="software_type_enum",
        native_enum=False,
    )
    asset_type_enum = sa.Enum(
        "standalone",
        "component",
        name="asset_type_enum",
        native_enum=False,
    )
    asset_status_enum = sa.Enum(
        "available",
        "assigned",
        "in_use",
        "under_repair",
        "maintenance",
        "disposed",
        "in_transit",
        "lost",
        "damaged",
        name="asset_status_enum",
        native_enum=False,
    )
    asset_importance_enum = sa.Enum(
        "critical",
        "high",
        "medium",
        "low",
        name="asset_importance_enum",
        native_enum=False,
    )
    condition_status_enum = sa.Enum(
        "excellent",
        "good",
        "fair",
        "poor",
        name="condition_status_enum",
        native_enum=False,
    )
    license_type_enum = sa.Enum(
        "per_user",
        "per_device",
        "concurrent",
        "site",
        "volume",
        name="license_type_enum",
        native_enum=False,
    )
    history_action_enum = sa.Enum(
        "create",
        "update",
        "assign",
        "unassign",
        "status_change",
        "install_component",
        "remove_component",
        "soft_delete",
        "restore",
        "purge",
        "seat_release",
        name="asset_history_action_enum",
        native_enum=False,
    )

    op.create_table(
        "vendors",
        sa.Column("vendor_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=160), nullable=False, unique=True),
        sa.Column("contact_email", sa.String(length=160), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "locations",
        sa.Column("location_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=160), nullable=False, unique=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(length=160), nullable=False),
        sa.Column("email", sa.String(length=160), nullable=False, unique=True),
        sa.Column(
            "location_id",
            sa.Integer(),
            sa.ForeignKey("locations.location_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_users_location_id", "users", ["location_id"])

    op.create_table(
        "products",
        sa.Column("product_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("category", product_category_enum, nullable=False),
        sa.Column("software_type", software_type_enum, nullable=True),
        sa.Column(
            "vendor_id",
            sa.Integer(),
            sa.ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("name", "category", name="uq_products_name_category"),
        sa.CheckConstraint(
            "(category = 'software' AND software_type IS NOT NULL) OR "
            "(category <> 'software' AND software_type IS NULL)",
            name="ck_products_software_type_consistency",
        ),
    )

    op.create_table(
        "assets",
        sa.Column("asset_id", uuid_type, primary_key=True),
        sa.Column("asset_tag", sa.String(length=40), nullable=False, unique=True),
        sa.Column("serial_number", sa.String(length=120), nullable=False),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.product_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("asset_type", asset_type_enum, nullable=False),
        sa.Column(
            "parent_asset_id",
            uuid_type,
            sa.ForeignKey("assets.asset_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "assigned_to",
            sa.Integer(),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "location_id",
            sa.Integer(),
            sa.ForeignKey("locations.location_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", asset_status_enum, nullable=False),
        sa.Column("importance", asset_importance_enum, nullable=False),
        sa.Column("condition_status", condition_status_enum, nullable=False),
        sa.Column("warranty_start_date", sa.Date(), nullable=True),
        sa.Column("warranty_end_date", sa.Date(), nullable=True),
        sa.Column("eol_date", sa.Date(), nullable=True),
        sa.Column("eos_date", sa.Date(), nullable=True),
        sa.Column(
            "vendor_id",
            sa.Integer(),
            sa.ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("invoice_number", sa.String(length=80), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("installation_notes", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "asset_type <> 'component' OR assigned_to IS NULL",
            name="ck_assets_component_unassigned",
        ),
        sa.CheckConstraint(
            "parent_asset_id IS NULL OR asset_type = 'component'",
            name="ck_assets_parent_requires_component",
        ),
        sa.CheckConstraint(
            "parent_asset_id IS NULL OR parent_asset_id <> asset_id",
            name="ck_assets_not_own_parent",
        ),
        sa.CheckConstraint(
            "purchase_cost IS NULL OR purchase_cost >= 0",
            name="ck_assets_purchase_cost_non_negative",
        ),
    )
    op.create_index("ix_assets_product_id", "assets", ["product_id"])
    op.create_index("ix_assets_parent_asset_id", "assets", ["parent_asset_id"])
    op.create_index("ix_assets_assigned_to", "assets", ["assigned_to"])
    op.create_index("assets_status_deleted_idx", "assets", ["status", "deleted_at"])
    op.create_index("assets_type_deleted_idx", "assets", ["asset_type", "deleted_at"])

    op.create_table(
        "asset_tag_sequences",
        sa.Column("prefix", sa.String(length=16), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "license_pools",
        sa.Column("license_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "software_product_id",
            sa.Integer(),
            sa.ForeignKey("products.product_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("license_name", sa.String(length=160), nullable=False),
        sa.Column("license_type", license_type_enum, nullable=False),
        sa.Column("total_licenses", sa.Integer(), nullable=False),
        sa.Column("allocated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("total_licenses > 0", name="ck_license_pools_total_positive"),
        sa.CheckConstraint(
            "allocated_count >= 0 AND allocated_count <= total_licenses",
            name="ck_license_pools_no_oversubscription",
        ),
        sa.CheckConstraint(
            "purchase_cost IS NULL OR purchase_cost >= 0",
            name="ck_license_pools_purchase_cost_non_negative",
        ),
    )
    op.create_index(
        "ix_license_pools_software_product_id", "license_pools", ["software_product_id"]
    )

    op.create_table(
        "software_installations",
        sa.Column("installation_id", uuid_type, primary_key=True),
        sa.Column(
            "asset_id",
            uuid_type,
            sa.ForeignKey("assets.asset_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "software_product_id",
            sa.Integer(),
            sa.ForeignKey("products.product_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("software_type", software_type_enum, nullable=False),
        sa.Column(
            "license_id",
            sa.Integer(),
            sa.ForeignKey("license_pools.license_id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("seat_held", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("installation_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "license_id IS NOT NULL OR NOT seat_held",
            name="ck_software_installations_seat_requires_license",
        ),
    )
    op.create_index(
        "ix_software_installations_asset_id", "software_installations", ["asset_id"]
    )
    op.create_index(
        "ix_software_installations_license_id", "software_installations", ["license_id"]
    )
    op.create_index(
        "software_installations_license_seat_idx",
        "software_installations",
        ["license_id", "seat_held"],
    )

    op.create_table(
        "asset_history",
        sa.Column("history_id", uuid_type, primary_key=True),
        sa.Column("asset_id", uuid_type, nullable=False),
        sa.Column("asset_tag", sa.String(length=40), nullable=False),
        sa.Column("action", history_action_enum, nullable=False),
        sa.Column("previous_status", sa.String(length=32), nullable=True),
        sa.Column("new_status", sa.String(length=32), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("actor_id", sa.String(length=120), nullable=True),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "asset_history_asset_idx", "asset_history", ["asset_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("asset_history_asset_idx", table_name="asset_history")
    op.drop_table("asset_history")

    op.drop_index(
        "software_installations_license_seat_idx", table_name="software_installations"
    )
    op.drop_index(
        "ix_software_installations_license_id", table_name="software_installations"
    )
    op.drop_index("ix_software_installations_asset_id", table_name="software_installations")
    op.drop_table("software_installations")

    op.drop_index("ix_license_pools_software_product_id", table_name="license_pools")
    op.drop_table("license_pools")

    op.drop_table("asset_tag_sequences")

    op.drop_index("assets_type_deleted_idx", table_name="assets")
    op.drop_index("assets_status_deleted_idx", table_name="assets")
    op.drop_index("ix_assets_assigned_to", table_name="assets")
    op.drop_index("ix_assets_parent_asset_id", table_name="assets")
    op.drop_index("ix_assets_product_id", table_name="assets")
    op.drop_table("assets")

    op.drop_table("products")
    op.drop_index("ix_users_location_id", table_name="users")
    op.drop_table("users")
    op.drop_table("locations")
    op.drop_table("vendors")
