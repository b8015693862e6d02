"""create templates, certificates and email_logs tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("field_mapping", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "certificates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "template_id",
            sa.String(36),
            sa.ForeignKey("templates.id"),
            nullable=False,
        ),
        sa.Column("first_name", sa.String(200), nullable=True),
        sa.Column("last_name", sa.String(200), nullable=True),
        sa.Column("recipient_email", sa.String(320), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expires_at", sa.Date(), nullable=False),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column("from_name", sa.String(100), nullable=True),
        sa.Column("certificate_code", sa.String(64), nullable=False),
        sa.Column("pdf_path", sa.String(512), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="issued"),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("certificate_code", name="uix_certificates_code"),
        sa.UniqueConstraint(
            "idempotency_key", name="uix_certificates_idempotency_key"
        ),
    )
    op.create_index(
        "ix_certificates_recipient_email", "certificates", ["recipient_email"]
    )
    op.create_index("ix_certificates_created_at", "certificates", ["created_at"])
    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "certificate_id",
            sa.String(36),
            sa.ForeignKey("certificates.id"),
            nullable=False,
        ),
        sa.Column("recipient_email", sa.String(320), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_email_logs_certificate_id", "email_logs", ["certificate_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_email_logs_certificate_id", table_name="email_logs")
    op.drop_table("email_logs")
    op.drop_index("ix_certificates_created_at", table_name="certificates")
    op.drop_index("ix_certificates_recipient_email", table_name="certificates")
    op.drop_table("certificates")
    op.drop_table("templates")
