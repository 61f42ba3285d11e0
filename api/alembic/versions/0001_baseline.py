"""baseline: events, certificate templates, certificates

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("date", sa.String(255), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
    )

    # One template per (event, category); category_key is the lower-cased match key
    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("category_key", sa.String(100), nullable=False),
        sa.Column("template_path", sa.Text(), nullable=False),
        sa.Column("template_url", sa.Text(), nullable=False),
        sa.Column("name_position_x", sa.Float(), nullable=True),
        sa.Column("name_position_y", sa.Float(), nullable=True),
        sa.Column("name_font_size", sa.Integer(), nullable=True),
        sa.Column("name_font_color", sa.String(32), nullable=True),
        sa.Column("name_font_family", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name="fk_certificate_templates_event_id_events",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_certificate_templates"),
        sa.UniqueConstraint(
            "event_id", "category_key", name="uq_certificate_templates_event_category"
        ),
    )
    op.create_index(
        "ix_certificate_templates_event_id", "certificate_templates", ["event_id"]
    )

    # At most one certificate per (email, event)
    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("event_name", sa.String(255), nullable=False),
        sa.Column("date_of_event", sa.String(255), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("certificate_url", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name="fk_certificates_event_id_events",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_certificates"),
        sa.UniqueConstraint("email", "event_id", name="uq_certificates_email_event"),
    )
    op.create_index("ix_certificates_email", "certificates", ["email"])
    op.create_index("ix_certificates_event_id", "certificates", ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_certificates_event_id", table_name="certificates")
    op.drop_index("ix_certificates_email", table_name="certificates")
    op.drop_table("certificates")
    op.drop_index(
        "ix_certificate_templates_event_id", table_name="certificate_templates"
    )
    op.drop_table("certificate_templates")
    op.drop_table("events")
