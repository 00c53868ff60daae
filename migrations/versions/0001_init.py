"""Initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    dialect = conn.dialect.name if conn is not None else "sqlite"
    true_def = sa.text("TRUE") if dialect == "postgresql" else sa.text("1")

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("manager_id", sa.Integer()),
        sa.Column("budget", sa.Float()),
        sa.Column("location", sa.String(length=200)),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
        *_timestamps(),
    )
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_id", sa.String(length=50), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("contact_email", sa.String(length=200), unique=True),
        sa.Column("phone", sa.String(length=50)),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id")),
        sa.Column("position", sa.String(length=100)),
        sa.Column("hire_date", sa.Date()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
        sa.Column("ms_graph_user_id", sa.String(length=100)),
        *_timestamps(),
    )
    op.create_table(
        "user_role_maps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("ms_graph_user_id", sa.String(length=100), unique=True),
        sa.Column("email", sa.String(length=200), unique=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="employee"),
        sa.Column("permissions", sa.JSON()),
        sa.Column("refresh_token", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("last_login", sa.DateTime()),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("account_locked_until", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_user_role_maps_active", "user_role_maps", ["is_active"])
    op.create_table(
        "software",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("version", sa.String(length=50)),
        sa.Column("vendor", sa.String(length=200)),
        sa.Column("license_key", sa.String(length=255)),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("employees.id")),
        *_timestamps(),
    )
    op.create_index("ix_software_assigned_to", "software", ["assigned_to"])
    op.create_table(
        "licenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("license_key", sa.String(length=255), nullable=False, unique=True),
        sa.Column("software_id", sa.Integer(), sa.ForeignKey("software.id")),
        sa.Column("license_type", sa.String(length=30), nullable=False, server_default="Single User"),
        sa.Column("max_users", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_users", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("cost", sa.Float()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("assigned_date", sa.Date()),
        sa.Column("vendor", sa.String(length=200)),
        sa.Column("notes", sa.Text()),
        sa.Column("renewal_date", sa.Date()),
        sa.Column("support_level", sa.String(length=50)),
        sa.Column("compliance_status", sa.String(length=50)),
        *_timestamps(),
    )
    op.create_index("ix_licenses_assigned_to", "licenses", ["assigned_to"])
    op.create_table(
        "hardware",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_tag", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("brand", sa.String(length=100)),
        sa.Column("model", sa.String(length=100)),
        sa.Column("serial_number", sa.String(length=100)),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("purchase_price", sa.Float()),
        sa.Column("warranty_expiry", sa.Date()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Available"),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("location", sa.String(length=200)),
        sa.Column("notes", sa.Text()),
        sa.Column("specifications", sa.JSON()),
        *_timestamps(),
    )
    op.create_index("ix_hardware_assigned_to", "hardware", ["assigned_to"])
    op.create_table(
        "integrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("endpoint_url", sa.String(length=500)),
        sa.Column("authentication_type", sa.String(length=50)),
        sa.Column("credentials", sa.Text()),
        sa.Column("configuration", sa.JSON()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Active"),
        sa.Column("last_sync", sa.DateTime()),
        sa.Column("sync_frequency", sa.String(length=50)),
        sa.Column("managed_by", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("user_role_maps.id")),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("user_role_maps.id")),
        *_timestamps(),
    )
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="Medium"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Open"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("due_date", sa.Date()),
        sa.Column("resolved_date", sa.DateTime()),
        sa.Column("resolution", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_tickets_created_by", "tickets", ["created_by"])
    op.create_index("ix_tickets_assigned_to", "tickets", ["assigned_to"])
    op.create_table(
        "ticket_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(length=30), nullable=False),
        sa.Column("old_value", sa.String(length=200)),
        sa.Column("new_value", sa.String(length=200)),
        sa.Column("changed_by", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_ticket_events_ticket_id", "ticket_events", ["ticket_id"])
    op.create_table(
        "ticket_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_ticket_comments_ticket_id", "ticket_comments", ["ticket_id"])
    op.create_table(
        "time_tracking",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user_role_maps.id"), nullable=False),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id")),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(), nullable=False),
        sa.Column("check_out_time", sa.DateTime()),
        sa.Column("location", sa.JSON()),
        sa.Column("total_hours", sa.Float()),
        sa.Column("overtime_hours", sa.Float(), server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="checked_in"),
        sa.Column("notes", sa.Text()),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.String(length=500)),
        sa.Column("device_info", sa.JSON()),
        *_timestamps(),
    )
    op.create_index("ix_time_tracking_user_id", "time_tracking", ["user_id"])
    op.create_index("ix_time_tracking_work_date", "time_tracking", ["work_date"])
    op.create_index(
        "uq_time_tracking_open_session",
        "time_tracking",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'checked_in'"),
        postgresql_where=sa.text("status = 'checked_in'"),
    )
    op.create_table(
        "biometric_employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("device_id", sa.String(length=100)),
        sa.Column("enrolled_at", sa.DateTime()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true_def),
    )


def downgrade() -> None:
    for table in (
        "biometric_employees",
        "time_tracking",
        "ticket_comments",
        "ticket_events",
        "tickets",
        "integrations",
        "hardware",
        "licenses",
        "software",
        "user_role_maps",
        "employees",
        "departments",
    ):
        op.drop_table(table)
