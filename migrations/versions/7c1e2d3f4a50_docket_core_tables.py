"""docket_core_tables

Create the docket core: reference data (country, event_name, actor, fees),
matters and events, task rules, tasks, the renewal log and the scheduled
job registry.

Revision ID: 7c1e2d3f4a50
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2d3f4a50"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("creator", sa.String(length=20), nullable=True),
        sa.Column("updater", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "country" not in existing_tables:
        op.create_table(
            "country",
            sa.Column("iso", sa.String(length=2), nullable=False),
            sa.Column("name", sa.String(length=80), nullable=False, server_default=""),
            sa.Column("name_fr", sa.String(length=80), nullable=True),
            sa.Column("name_de", sa.String(length=80), nullable=True),
            sa.Column("renewal_first", sa.SmallInteger(), nullable=True),
            sa.Column("renewal_base", sa.String(length=5), nullable=True, server_default="FIL"),
            sa.Column("renewal_start", sa.String(length=5), nullable=True, server_default="FIL"),
            sa.Column("renewal_lookback_months", sa.SmallInteger(), nullable=True),
            sa.Column("grace_months", sa.SmallInteger(), nullable=True),
            sa.PrimaryKeyConstraint("iso"),
        )

    if "event_name" not in existing_tables:
        op.create_table(
            "event_name",
            sa.Column("code", sa.String(length=5), nullable=False),
            sa.Column("name", sa.String(length=60), nullable=False),
            sa.Column("is_task", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status_event", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("killer", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.PrimaryKeyConstraint("code"),
        )

    if "actor" not in existing_tables:
        op.create_table(
            "actor",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("display_name", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("language", sa.String(length=2), nullable=True),
            sa.Column("small_entity", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ren_discount", sa.Numeric(8, 2), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "fees" not in existing_tables:
        op.create_table(
            "fees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("for_country", sa.String(length=2), nullable=False),
            sa.Column("for_category", sa.String(length=5), nullable=False),
            sa.Column("for_origin", sa.String(length=2), nullable=True),
            sa.Column("qt", sa.Integer(), nullable=False),
            sa.Column("use_before", sa.Date(), nullable=True),
            sa.Column("use_after", sa.Date(), nullable=True),
            sa.Column("cost", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee", sa.Numeric(10, 2), nullable=True),
            sa.Column("cost_reduced", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee_reduced", sa.Numeric(10, 2), nullable=True),
            sa.Column("cost_sup", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee_sup", sa.Numeric(10, 2), nullable=True),
            sa.Column("cost_sup_reduced", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee_sup_reduced", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
            sa.ForeignKeyConstraint(["for_country"], ["country.iso"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["for_origin"], ["country.iso"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_fees_lookup", "fees", ["for_country", "for_category", "qt"])

    if "matter" not in existing_tables:
        op.create_table(
            "matter",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("category_code", sa.String(length=5), nullable=False, server_default="PAT"),
            sa.Column("caseref", sa.String(length=30), nullable=False),
            sa.Column("country", sa.String(length=2), nullable=False),
            sa.Column("origin", sa.String(length=2), nullable=True),
            sa.Column("type_code", sa.String(length=5), nullable=True),
            sa.Column("idx", sa.SmallInteger(), nullable=True),
            sa.Column("container_id", sa.Integer(), nullable=True),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("client_id", sa.Integer(), nullable=True),
            sa.Column("client_ref", sa.String(length=100), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=True),
            sa.Column("responsible", sa.String(length=20), nullable=True),
            sa.Column("dead", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("expire_date", sa.Date(), nullable=True),
            sa.Column("uid", sa.String(length=45), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["country"], ["country.iso"]),
            sa.ForeignKeyConstraint(["origin"], ["country.iso"]),
            sa.ForeignKeyConstraint(["container_id"], ["matter.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["parent_id"], ["matter.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["client_id"], ["actor.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("caseref", "country", "origin", "type_code", "idx",
                                name="uq_matter_identity"),
        )
        op.create_index("ix_matter_caseref", "matter", ["caseref"])
        op.create_index("ix_matter_uid", "matter", ["uid"])
        op.create_index("ix_matter_dead_expire", "matter", ["dead", "expire_date"])

    if "event" not in existing_tables:
        op.create_table(
            "event",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=5), nullable=False),
            sa.Column("matter_id", sa.Integer(), nullable=False),
            sa.Column("event_date", sa.Date(), nullable=True),
            sa.Column("alt_matter_id", sa.Integer(), nullable=True),
            sa.Column("detail", sa.String(length=45), nullable=True),
            sa.Column("notes", sa.String(length=150), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["code"], ["event_name.code"]),
            sa.ForeignKeyConstraint(["matter_id"], ["matter.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["alt_matter_id"], ["matter.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("matter_id", "code", "event_date", "alt_matter_id", name="uq_event"),
        )
        op.create_index("ix_event_code", "event", ["code"])
        op.create_index("ix_event_matter_id", "event", ["matter_id"])

    if "task_rules" not in existing_tables:
        op.create_table(
            "task_rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("for_category", sa.String(length=5), nullable=True),
            sa.Column("for_country", sa.String(length=2), nullable=True),
            sa.Column("for_origin", sa.String(length=2), nullable=True),
            sa.Column("for_type", sa.String(length=5), nullable=True),
            sa.Column("trigger_event", sa.String(length=5), nullable=False),
            sa.Column("task", sa.String(length=5), nullable=False),
            sa.Column("detail", sa.JSON(), nullable=True),
            sa.Column("days", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("months", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("years", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("end_of_month", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("use_priority", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("abort_on", sa.String(length=5), nullable=True),
            sa.Column("condition_event", sa.String(length=5), nullable=True),
            sa.Column("use_before", sa.Date(), nullable=True),
            sa.Column("use_after", sa.Date(), nullable=True),
            sa.Column("cost", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=True, server_default="EUR"),
            sa.Column("clear_task", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("delete_task", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("responsible", sa.String(length=20), nullable=True),
            sa.Column("notes", sa.String(length=160), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["for_country"], ["country.iso"]),
            sa.ForeignKeyConstraint(["for_origin"], ["country.iso"]),
            sa.ForeignKeyConstraint(["trigger_event"], ["event_name.code"]),
            sa.ForeignKeyConstraint(["task"], ["event_name.code"]),
            sa.ForeignKeyConstraint(["abort_on"], ["event_name.code"]),
            sa.ForeignKeyConstraint(["condition_event"], ["event_name.code"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_rules_trigger_event", "task_rules", ["trigger_event"])

    if "task" not in existing_tables:
        op.create_table(
            "task",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("trigger_id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=5), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("done_date", sa.Date(), nullable=True),
            sa.Column("assigned_to", sa.String(length=20), nullable=True),
            sa.Column("detail", sa.JSON(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("step", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("grace_period", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("invoice_step", sa.SmallInteger(), nullable=False, server_default="0"),
            sa.Column("cost", sa.Numeric(10, 2), nullable=True),
            sa.Column("fee", sa.Numeric(10, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=True),
            sa.Column("rule_used", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["trigger_id"], ["event.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["code"], ["event_name.code"]),
            sa.ForeignKeyConstraint(["rule_used"], ["task_rules.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_trigger_id", "task", ["trigger_id"])
        op.create_index("ix_task_code_done", "task", ["code", "done"])

    if "renewals_logs" not in existing_tables:
        op.create_table(
            "renewals_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("job_id", sa.Integer(), nullable=True),
            sa.Column("from_step", sa.SmallInteger(), nullable=True),
            sa.Column("to_step", sa.SmallInteger(), nullable=True),
            sa.Column("from_invoice_step", sa.SmallInteger(), nullable=True),
            sa.Column("to_invoice_step", sa.SmallInteger(), nullable=True),
            sa.Column("from_grace", sa.Boolean(), nullable=True),
            sa.Column("to_grace", sa.Boolean(), nullable=True),
            sa.Column("from_done", sa.Boolean(), nullable=True),
            sa.Column("to_done", sa.Boolean(), nullable=True),
            sa.Column("creator", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["task.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_renewals_logs_task", "renewals_logs", ["task_id"])
        op.create_index("idx_renewals_logs_job", "renewals_logs", ["job_id"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "scheduled_jobs", "renewals_logs", "task", "task_rules", "event",
        "matter", "fees", "actor", "event_name", "country",
    ):
        if table in existing_tables:
            op.drop_table(table)
