"""Create deals projection and notification engine tables."""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

TIMESTAMP_DEFAULT = sa.text("CURRENT_TIMESTAMP")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=TIMESTAMP_DEFAULT,
        nullable=False,
    )


def _nullable_timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "deals",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("creator_id", sa.String(length=36), nullable=False),
        sa.Column("promisor_id", sa.String(length=36), nullable=True),
        sa.Column("promisee_id", sa.String(length=36), nullable=True),
        sa.Column("counterparty_id", sa.String(length=36), nullable=True),
        sa.Column(
            "status",
            sa.String(length=32),
            server_default=sa.text("'active'"),
            nullable=False,
        ),
        sa.Column("invite_status", sa.String(length=32), nullable=True),
        sa.Column("invite_token", sa.String(length=64), nullable=True),
        _nullable_timestamp("due_at"),
        _nullable_timestamp("completed_at"),
        _nullable_timestamp("accepted_at"),
        _nullable_timestamp("counterparty_accepted_at"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deals_creator_id", "deals", ["creator_id"], unique=False)
    op.create_index("ix_deals_status_due_at", "deals", ["status", "due_at"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("promise_id", sa.String(length=36), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("cta_url", sa.String(length=512), nullable=False),
        sa.Column("cta_label", sa.String(length=80), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("dedupe_key", sa.String(length=191), nullable=False),
        _nullable_timestamp("delivered_at"),
        _nullable_timestamp("read_at"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["promise_id"], ["deals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "dedupe_key",
            name="ux_notifications_user_dedupe_key",
        ),
    )
    op.create_index(
        "ix_notifications_user_created_at",
        "notifications",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_notifications_user_promise_category_created_at",
        "notifications",
        ["user_id", "promise_id", "category", "created_at"],
        unique=False,
    )

    op.create_table(
        "notification_states",
        sa.Column("promise_id", sa.String(length=36), nullable=False),
        _nullable_timestamp("invite_notified_at"),
        _nullable_timestamp("invite_followup_notified_at"),
        _nullable_timestamp("due_soon_notified_at"),
        _nullable_timestamp("overdue_notified_at"),
        _nullable_timestamp("overdue_creator_notified_at"),
        _nullable_timestamp("completion_notified_at"),
        sa.Column(
            "completion_followups_count",
            sa.Integer(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        _nullable_timestamp("completion_followup_last_at"),
        sa.Column(
            "completion_cycle_id",
            sa.Integer(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        _nullable_timestamp("completion_cycle_started_at"),
        sa.Column("version", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["promise_id"], ["deals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("promise_id"),
    )

    op.create_table(
        "user_notification_settings",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("locale", sa.String(length=8), nullable=True),
        sa.Column("push_enabled", sa.Boolean(), nullable=True),
        sa.Column("deadline_reminders_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_start", sa.String(length=5), nullable=True),
        sa.Column("quiet_hours_end", sa.String(length=5), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    op.drop_table("user_notification_settings")
    op.drop_table("notification_states")
    op.drop_index(
        "ix_notifications_user_promise_category_created_at", table_name="notifications"
    )
    op.drop_index("ix_notifications_user_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_deals_status_due_at", table_name="deals")
    op.drop_index("ix_deals_creator_id", table_name="deals")
    op.drop_table("deals")
