"""Monitoring baseline: readings, per-patient alert settings and alerts.

Revision ID: 20261019_00
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "20261019_00"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def _vital(name: str) -> list[sa.Column]:
    return [
        sa.Column(name, sa.Float(), nullable=True),
        sa.Column(f"{name}_unit", sa.String(length=16), nullable=True),
        sa.Column(f"{name}_quality", sa.String(length=8), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "vital_readings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        *_vital("heart_rate"),
        *_vital("temperature"),
        *_vital("spo2"),
        sa.Column("systolic", sa.Float(), nullable=True),
        sa.Column("diastolic", sa.Float(), nullable=True),
        sa.Column("blood_pressure_unit", sa.String(length=16), nullable=True),
        sa.Column("blood_pressure_quality", sa.String(length=8), nullable=True),
        sa.Column("battery_level", sa.Float(), nullable=True),
        sa.Column("signal_strength", sa.Float(), nullable=True),
        sa.Column("firmware_version", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vital_readings_patient_id", "vital_readings", ["patient_id"])
    op.create_index("ix_vital_readings_device_id", "vital_readings", ["device_id"])
    op.create_index(
        "ix_vital_readings_patient_recorded",
        "vital_readings",
        ["patient_id", "recorded_at"],
    )

    op.create_table(
        "patient_alert_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.String(length=64), nullable=False),
        sa.Column("thresholds", sa.JSON(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("push_token", sa.String(length=255), nullable=True),
        sa.Column("alert_methods", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_patient_alert_settings_patient_id",
        "patient_alert_settings",
        ["patient_id"],
        unique=True,
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("alert_id", sa.String(length=40), nullable=False),
        sa.Column("patient_id", sa.String(length=64), nullable=False),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("alert_type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("occurrence_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("acknowledged_by", sa.String(length=64), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_method", sa.String(length=64), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("escalation_level", sa.Integer(), nullable=True),
        sa.Column("escalated_to", sa.String(length=120), nullable=True),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notifications", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("alert_id"),
    )
    op.create_index("ix_alerts_patient_id", "alerts", ["patient_id"])
    op.create_index("ix_alerts_status_severity", "alerts", ["status", "severity"])
    op.create_index("ix_alerts_patient_created", "alerts", ["patient_id", "created_at"])
    op.create_index(
        "uq_alerts_active_patient_type",
        "alerts",
        ["patient_id", "alert_type"],
        unique=True,
        postgresql_where=sa.text("status = 'active' AND alert_type <> 'emergency'"),
        sqlite_where=sa.text("status = 'active' AND alert_type <> 'emergency'"),
    )


def downgrade() -> None:
    op.drop_index("uq_alerts_active_patient_type", table_name="alerts")
    op.drop_index("ix_alerts_patient_created", table_name="alerts")
    op.drop_index("ix_alerts_status_severity", table_name="alerts")
    op.drop_index("ix_alerts_patient_id", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index(
        "ix_patient_alert_settings_patient_id", table_name="patient_alert_settings"
    )
    op.drop_table("patient_alert_settings")
    op.drop_index("ix_vital_readings_patient_recorded", table_name="vital_readings")
    op.drop_index("ix_vital_readings_device_id", table_name="vital_readings")
    op.drop_index("ix_vital_readings_patient_id", table_name="vital_readings")
    op.drop_table("vital_readings")
