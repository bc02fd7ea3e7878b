"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-01
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Float(), nullable=False, server_default="0")


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=80), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("checkin_enabled", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("display_name", sa.String(length=160), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_org_id", "audit_events", ["org_id"])

    op.create_table(
        "health_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=True),
        sa.Column("vehicle_reg", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="created"),
        sa.Column("technician_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("advisor_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("arrived_at", sa.DateTime(), nullable=True),
        sa.Column("tech_started_at", sa.DateTime(), nullable=True),
        sa.Column("tech_completed_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("red_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amber_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("green_count", sa.Integer(), nullable=False, server_default="0"),
        _money("total_identified"),
        _money("total_authorized"),
        _money("total_declined"),
        _money("total_deferred"),
        sa.Column("public_token", sa.String(length=64), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(), nullable=True),
        sa.Column("first_opened_at", sa.DateTime(), nullable=True),
        sa.Column("customer_view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("customer_last_viewed_at", sa.DateTime(), nullable=True),
        sa.Column("first_response_at", sa.DateTime(), nullable=True),
        sa.Column("fully_responded_at", sa.DateTime(), nullable=True),
        sa.Column("authorization_method", sa.String(length=40), nullable=True),
        sa.Column("authorized_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("authorized_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_health_checks_org_id", "health_checks", ["org_id"])
    op.create_index("ix_health_checks_status", "health_checks", ["status"])
    op.create_index("ix_health_checks_public_token", "health_checks", ["public_token"], unique=True)

    op.create_table(
        "check_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "health_check_id",
            sa.Integer(),
            sa.ForeignKey("health_checks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("template_item_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("rag_status", sa.String(length=10), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_check_results_health_check_id", "check_results", ["health_check_id"])

    op.create_table(
        "repair_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "health_check_id",
            sa.Integer(),
            sa.ForeignKey("health_checks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("org_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_group", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "parent_repair_item_id",
            sa.Integer(),
            sa.ForeignKey("repair_items.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("rag_status", sa.String(length=10), nullable=True),
        sa.Column("source", sa.String(length=40), nullable=True),
        _money("labour_total"),
        _money("parts_total"),
        _money("subtotal"),
        _money("vat_amount"),
        _money("total_inc_vat"),
        sa.Column("outcome_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("outcome_set_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("outcome_set_at", sa.DateTime(), nullable=True),
        sa.Column("outcome_source", sa.String(length=20), nullable=True),
        sa.Column("declined_reason", sa.String(length=200), nullable=True),
        sa.Column("declined_notes", sa.Text(), nullable=True),
        sa.Column("deferred_until", sa.Date(), nullable=True),
        sa.Column("deferred_notes", sa.Text(), nullable=True),
        sa.Column("customer_approved", sa.Boolean(), nullable=True),
        sa.Column("customer_approved_at", sa.DateTime(), nullable=True),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("customer_signature_data", sa.Text(), nullable=True),
        sa.Column("selected_option_id", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("deleted_reason", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_repair_items_health_check_id", "repair_items", ["health_check_id"])
    op.create_index("ix_repair_items_org_id", "repair_items", ["org_id"])
    op.create_index("ix_repair_items_parent_repair_item_id", "repair_items", ["parent_repair_item_id"])
    op.create_index("ix_repair_items_hc_parent", "repair_items", ["health_check_id", "parent_repair_item_id"])

    op.create_table(
        "repair_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "repair_item_id",
            sa.Integer(),
            sa.ForeignKey("repair_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_recommended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        _money("labour_total"),
        _money("parts_total"),
        _money("subtotal"),
        _money("vat_amount"),
        _money("total_inc_vat"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_repair_options_repair_item_id", "repair_options", ["repair_item_id"])

    for table, qty_cols in (
        (
            "repair_labour",
            [
                sa.Column("hours", sa.Float(), nullable=False, server_default="0"),
                sa.Column("rate", sa.Float(), nullable=False, server_default="0"),
            ],
        ),
        (
            "repair_parts",
            [
                sa.Column("part_number", sa.String(length=80), nullable=True),
                sa.Column("quantity", sa.Float(), nullable=False, server_default="1"),
                sa.Column("unit_price", sa.Float(), nullable=False, server_default="0"),
            ],
        ),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "repair_item_id",
                sa.Integer(),
                sa.ForeignKey("repair_items.id", ondelete="CASCADE"),
                nullable=True,
            ),
            sa.Column(
                "repair_option_id",
                sa.Integer(),
                sa.ForeignKey("repair_options.id", ondelete="CASCADE"),
                nullable=True,
            ),
            # member a line was moved from when its item was grouped
            sa.Column(
                "source_repair_item_id",
                sa.Integer(),
                sa.ForeignKey("repair_items.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("description", sa.String(length=200), nullable=True),
            *qty_cols,
            _money("total"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index(f"ix_{table}_repair_item_id", table, ["repair_item_id"])
        op.create_index(f"ix_{table}_repair_option_id", table, ["repair_option_id"])
        op.create_index(f"ix_{table}_source_repair_item_id", table, ["source_repair_item_id"])

    op.create_table(
        "repair_item_check_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "repair_item_id",
            sa.Integer(),
            sa.ForeignKey("repair_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "check_result_id",
            sa.Integer(),
            sa.ForeignKey("check_results.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("repair_item_id", "check_result_id", name="uq_repair_item_check_result"),
    )
    op.create_index("ix_repair_item_check_results_repair_item_id", "repair_item_check_results", ["repair_item_id"])
    op.create_index("ix_repair_item_check_results_check_result_id", "repair_item_check_results", ["check_result_id"])

    op.create_table(
        "health_check_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("health_check_id", sa.Integer(), sa.ForeignKey("health_checks.id"), nullable=False),
        sa.Column("from_status", sa.String(length=40), nullable=True),
        sa.Column("to_status", sa.String(length=40), nullable=False),
        sa.Column("changed_by", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("change_source", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_health_check_status_history_health_check_id", "health_check_status_history", ["health_check_id"]
    )


def downgrade():
    op.drop_table("health_check_status_history")
    op.drop_table("repair_item_check_results")
    op.drop_table("repair_parts")
    op.drop_table("repair_labour")
    op.drop_table("repair_options")
    op.drop_table("repair_items")
    op.drop_table("check_results")
    op.drop_table("health_checks")
    op.drop_table("audit_events")
    op.drop_table("app_users")
    op.drop_table("organizations")
