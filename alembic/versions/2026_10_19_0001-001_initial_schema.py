"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

All 5 tables as defined in fundhub/models/database_models.py:
funds, profiles, fund_members, document_templates, generated_documents.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    fund_status = sa.Enum(
        "ready", "processing", "applied", "active", "closing", "closed", name="fundstatus",
    )
    payment_schedule = sa.Enum("lump_sum", "capital_call", name="paymentschedule")
    profile_role = sa.Enum("USER", "ADMIN", name="profilerole")
    entity_type = sa.Enum("individual", "corporate", name="entitytype")
    document_type = sa.Enum(
        "lpa", "lpa_consent_form", "personal_info_consent_form", "member_list", name="documenttype",
    )
    for enum_type in (fund_status, payment_schedule, profile_role, entity_type, document_type):
        enum_type.create(op.get_bind(), checkfirst=True)

    def _enum(name):
        # Types were created above
        return postgresql.ENUM(name=name, create_type=False)

    # ── funds ─────────────────────────────────────────────────────────────
    op.create_table(
        "funds",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("brand", sa.String(50), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("abbreviation", sa.String(100), nullable=True),
        sa.Column("status", _enum("fundstatus"), nullable=False, server_default="ready"),
        sa.Column("closed_at", sa.Date, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("par_value", sa.BigInteger, nullable=False, server_default="1000000"),
        sa.Column("total_cap", sa.BigInteger, nullable=True),
        sa.Column("initial_cap", sa.BigInteger, nullable=True),
        sa.Column("payment_schedule", _enum("paymentschedule"), nullable=False, server_default="lump_sum"),
        sa.Column("duration", sa.Integer, nullable=False, server_default="5"),
        sa.Column("min_units", sa.Integer, nullable=False, server_default="1"),
        sa.Column("gp_id", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("account", sa.String(100), nullable=True),
        sa.Column("account_bank", sa.String(100), nullable=True),
        sa.Column("tax_number", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── profiles ──────────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("brand", sa.String(50), nullable=False, index=True),
        sa.Column("user_id", sa.String(255), nullable=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("role", _enum("profilerole"), nullable=False, server_default="USER"),
        sa.Column("entity_type", _enum("entitytype"), nullable=False, server_default="individual"),
        sa.Column("birth_date", sa.String(20), nullable=True),
        sa.Column("business_number", sa.String(50), nullable=True),
        sa.Column("ceo", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("brand", "email", name="uq_profiles_brand_email"),
    )

    # ── fund_members ──────────────────────────────────────────────────────
    op.create_table(
        "fund_members",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("brand", sa.String(50), nullable=False, index=True),
        sa.Column("fund_id", sa.Integer, sa.ForeignKey("funds.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("profile_id", sa.Integer, sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("investment_units", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_units", sa.Integer, nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("fund_id", "profile_id", name="uq_fund_members_fund_profile"),
    )

    # ── document_templates ────────────────────────────────────────────────
    op.create_table(
        "document_templates",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("brand", sa.String(50), nullable=False, index=True),
        sa.Column("document_type", _enum("documenttype"), nullable=False, index=True),
        sa.Column("fund_id", sa.Integer, sa.ForeignKey("funds.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("version", sa.String(32), nullable=False),
        sa.Column("content", sa.JSON, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.execute(
        "CREATE UNIQUE INDEX uq_document_templates_scope_version "
        "ON document_templates (brand, document_type, COALESCE(fund_id, 0), version)"
    )
    op.execute(
        "CREATE UNIQUE INDEX uq_document_templates_active_scope "
        "ON document_templates (brand, document_type, COALESCE(fund_id, 0)) "
        "WHERE is_active"
    )

    # ── generated_documents ───────────────────────────────────────────────
    op.create_table(
        "generated_documents",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("brand", sa.String(50), nullable=False, index=True),
        sa.Column("fund_id", sa.Integer, sa.ForeignKey("funds.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("document_type", _enum("documenttype"), nullable=False, index=True),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column(
            "template_id", sa.Integer,
            sa.ForeignKey("document_templates.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("template_version", sa.String(32), nullable=False),
        sa.Column("generation_context", sa.JSON, nullable=False),
        sa.Column("processed_content", sa.JSON, nullable=False),
        sa.Column("pdf_storage_path", sa.String(512), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("generated_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "fund_id", "document_type", "version_number",
            name="uq_generated_documents_version",
        ),
    )


def downgrade() -> None:
    op.drop_table("generated_documents")
    op.execute("DROP INDEX IF EXISTS uq_document_templates_active_scope")
    op.execute("DROP INDEX IF EXISTS uq_document_templates_scope_version")
    op.drop_table("document_templates")
    op.drop_table("fund_members")
    op.drop_table("profiles")
    op.drop_table("funds")
    for name in ("documenttype", "entitytype", "profilerole", "paymentschedule", "fundstatus"):
        op.execute(f"DROP TYPE IF EXISTS {name}")
