"""create domain verification tables

Revision ID: 0001_verification
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_verification"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


domain_status = sa.Enum("pending", "active", "error", name="domain_status")
attempt_status = sa.Enum("pending", "verified", "failed", "timeout", name="attempt_status")
event_type = sa.Enum(
    "verification_started",
    "verification_success",
    "dns_error",
    "authority_error",
    "environment_error",
    "verification_timeout",
    "verification_failed",
    name="telemetry_event_type",
)
severity = sa.Enum("info", "warning", "error", "critical", name="telemetry_severity")


def upgrade() -> None:
    op.create_table(
        "domains",
        sa.Column("domain_id", sa.Uuid(), primary_key=True),
        sa.Column("hostname", sa.String(255), nullable=False),
        sa.Column("site_id", sa.Uuid(), nullable=True),
        sa.Column("provider", sa.String(50), nullable=False, server_default=sa.text("'vercel'")),
        sa.Column("status", domain_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_domains_hostname"), "domains", ["hostname"], unique=True)
    op.create_index(op.f("ix_domains_site_id"), "domains", ["site_id"], unique=False)

    op.create_table(
        "verification_attempts",
        sa.Column("attempt_id", sa.Uuid(), primary_key=True),
        sa.Column("domain_id", sa.Uuid(), sa.ForeignKey("domains.domain_id"), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", attempt_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index(
        op.f("ix_verification_attempts_status"),
        "verification_attempts",
        ["status"],
        unique=False,
    )
    op.create_index(
        "ix_attempts_due_lookup",
        "verification_attempts",
        ["status", "next_retry_at"],
        unique=False,
    )
    op.create_index(
        "ix_attempts_domain_created",
        "verification_attempts",
        ["domain_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "uq_attempts_one_pending_per_domain",
        "verification_attempts",
        ["domain_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "telemetry_events",
        sa.Column("event_id", sa.Uuid(), primary_key=True),
        sa.Column("domain_id", sa.Uuid(), sa.ForeignKey("domains.domain_id"), nullable=False),
        sa.Column("event_type", event_type, nullable=False),
        sa.Column("severity", severity, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
    )
    op.create_index(op.f("ix_telemetry_events_event_type"), "telemetry_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_telemetry_events_severity"), "telemetry_events", ["severity"], unique=False)
    op.create_index("ix_telemetry_domain_timestamp", "telemetry_events", ["domain_id", "timestamp"], unique=False)
    op.create_index("ix_telemetry_unresolved", "telemetry_events", ["resolved", "severity"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_telemetry_unresolved", table_name="telemetry_events")
    op.drop_index("ix_telemetry_domain_timestamp", table_name="telemetry_events")
    op.drop_index(op.f("ix_telemetry_events_severity"), table_name="telemetry_events")
    op.drop_index(op.f("ix_telemetry_events_event_type"), table_name="telemetry_events")
    op.drop_table("telemetry_events")

    op.drop_index("uq_attempts_one_pending_per_domain", table_name="verification_attempts")
    op.drop_index("ix_attempts_domain_created", table_name="verification_attempts")
    op.drop_index("ix_attempts_due_lookup", table_name="verification_attempts")
    op.drop_index(op.f("ix_verification_attempts_status"), table_name="verification_attempts")
    op.drop_table("verification_attempts")

    op.drop_index(op.f("ix_domains_site_id"), table_name="domains")
    op.drop_index(op.f("ix_domains_hostname"), table_name="domains")
    op.drop_table("domains")

    bind = op.get_bind()
    for enum in (severity, event_type, attempt_status, domain_status):
        enum.drop(bind, checkfirst=True)
