"""init schema"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255)),
        sa.Column("full_name", sa.String(length=255)),
        sa.Column("password_changed_at", sa.DateTime(timezone=True)),
        sa.Column("password_expiry_notified_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "user_2fa",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("secret", sa.String(length=64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recovery_codes", sa.JSON()),
    )

    op.create_table(
        "security_audit_log",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(length=64), index=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("event_details", sa.JSON()),
        sa.Column("ip_address", sa.String(length=64), nullable=False, server_default="unknown"),
        sa.Column("user_agent", sa.Text(), nullable=False, server_default="unknown"),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("city", sa.String(length=128)),
        sa.Column("country", sa.String(length=128)),
        sa.Column("country_code", sa.String(length=2)),
        sa.Column("region", sa.String(length=128)),
        sa.Column("is_high_risk", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_event_ip_created", "security_audit_log", ["event_type", "ip_address", "created_at"])
    op.create_index("ix_audit_user_event_created", "security_audit_log", ["user_id", "event_type", "created_at"])

    op.create_table(
        "user_devices",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), index=True),
        sa.Column("device_fingerprint", sa.String(length=128), nullable=False),
        sa.Column("device_name", sa.String(length=128), nullable=False),
        sa.Column("browser", sa.String(length=64)),
        sa.Column("browser_version", sa.String(length=64)),
        sa.Column("os", sa.String(length=64)),
        sa.Column("os_version", sa.String(length=64)),
        sa.Column("device_type", sa.String(length=16)),
        sa.Column("screen_resolution", sa.String(length=32)),
        sa.Column("timezone", sa.String(length=64)),
        sa.Column("is_trusted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "device_fingerprint", name="uq_user_devices_user_fingerprint"),
    )

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), index=True),
        sa.Column("device_id", sa.String(length=36), sa.ForeignKey("user_devices.id")),
        sa.Column("session_token", sa.String(length=2048), nullable=False, unique=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_active_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "geofencing_rules",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("rule_name", sa.String(length=128), nullable=False),
        sa.Column("rule_type", sa.String(length=8), nullable=False),
        sa.Column("country_codes", sa.JSON()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "geofencing_exceptions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), index=True),
        sa.Column("country_codes", sa.JSON()),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("geofencing_exceptions")
    op.drop_table("geofencing_rules")
    op.drop_table("user_sessions")
    op.drop_table("user_devices")
    op.drop_index("ix_audit_user_event_created", table_name="security_audit_log")
    op.drop_index("ix_audit_event_ip_created", table_name="security_audit_log")
    op.drop_table("security_audit_log")
    op.drop_table("user_2fa")
    op.drop_table("profiles")
