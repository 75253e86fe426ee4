# migrations/versions/0001_create_parkalert_tables.py
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers:
revision = "0001_create_parkalert"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("account_id", sa.String(length=64), primary_key=True),
        sa.Column("reputation_score", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("reputation_score >= 0", name="ck_accounts_score_non_negative"),
    )
    op.create_table(
        "identifiers",
        sa.Column("identifier_hash", sa.String(length=64), primary_key=True),
        sa.Column(
            "owner_account_id",
            sa.String(length=64),
            sa.ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("verification_status", sa.String(length=16), nullable=False, server_default="verified"),
        sa.Column("ownership_proof_hash", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("registered_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_identifiers_owner", "identifiers", ["owner_account_id"])

    op.create_table(
        "alerts",
        sa.Column("alert_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "sender_account_id",
            sa.String(length=64),
            sa.ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "receiver_account_id",
            sa.String(length=64),
            sa.ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_identifier_hash", sa.String(length=64), nullable=False),
        sa.Column("urgency_level", sa.String(length=16), nullable=False, server_default="normal"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="sent"),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response", sa.Text(), nullable=True),
        sa.Column("push_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("push_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("spam_reported", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_alerts_sender_sent", "alerts", ["sender_account_id", "sent_at"])
    op.create_index("ix_alerts_receiver", "alerts", ["receiver_account_id"])
    op.create_index("ix_alerts_target", "alerts", ["target_identifier_hash"])
    op.create_index("ix_alerts_status_expires", "alerts", ["status", "expires_at"])

    op.create_table(
        "reputation_events",
        sa.Column("event_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(length=64),
            sa.ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("applied_delta", sa.Integer(), nullable=False),
        sa.Column("related_alert_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_reputation_events_account", "reputation_events", ["account_id"])

    op.create_table(
        "security_events",
        sa.Column("event_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(length=64),
            sa.ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("action_taken", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_security_events_account", "security_events", ["account_id"])
    op.create_index("ix_security_events_type_ts", "security_events", ["event_type", "created_at"])

    op.create_table(
        "registration_attempts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("origin_hash", sa.String(length=64), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=True),
        sa.Column("identifier_hash", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "ix_registration_attempts_origin_ts", "registration_attempts", ["origin_hash", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_registration_attempts_origin_ts", table_name="registration_attempts")
    op.drop_table("registration_attempts")
    op.drop_index("ix_security_events_type_ts", table_name="security_events")
    op.drop_index("ix_security_events_account", table_name="security_events")
    op.drop_table("security_events")
    op.drop_index("ix_reputation_events_account", table_name="reputation_events")
    op.drop_table("reputation_events")
    op.drop_index("ix_alerts_status_expires", table_name="alerts")
    op.drop_index("ix_alerts_target", table_name="alerts")
    op.drop_index("ix_alerts_receiver", table_name="alerts")
    op.drop_index("ix_alerts_sender_sent", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_identifiers_owner", table_name="identifiers")
    op.drop_table("identifiers")
    op.drop_table("accounts")
