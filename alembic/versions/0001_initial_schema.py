"""Initial schema: users, notifications, sync_status, advisories, nvd_cves, nvd_cpe_index.

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── users ────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ── notifications ────────────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    # ── sync_status ──────────────────────────────────────────────────────────
    op.create_table(
        "sync_status",
        sa.Column("source", sa.String(50), primary_key=True, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_full_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_modified_marker", sa.DateTime(timezone=True), nullable=True),
        sa.Column("advisory_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("package_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )

    # ── advisories ───────────────────────────────────────────────────────────
    op.create_table(
        "advisories",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("advisory_id", sa.String(100), nullable=False),
        sa.Column("ecosystem", sa.String(50), nullable=False),
        sa.Column("package_name", sa.String(500), nullable=False),
        sa.Column("package_purl", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("cvss_score", sa.Float(), nullable=True),
        sa.Column("cvss_vector", sa.String(255), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("affected_ranges", JSONB(), nullable=False, server_default="[]"),
        sa.Column("affected_versions", JSONB(), nullable=False, server_default="[]"),
        sa.Column("fixed_version", sa.String(255), nullable=True),
        sa.Column("aliases", JSONB(), nullable=False, server_default="[]"),
        sa.Column("references_json", JSONB(), nullable=False, server_default="[]"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_batch_id", sa.String(64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "source", "advisory_id", "ecosystem", "package_name",
            name="uq_advisories_key",
        ),
    )
    op.create_index("ix_advisories_advisory_id", "advisories", ["advisory_id"])
    op.create_index(
        "ix_advisories_ecosystem_package", "advisories", ["ecosystem", "package_name"]
    )
    op.create_index("ix_advisories_sync_batch_id", "advisories", ["sync_batch_id"])
    op.create_index(
        "ix_advisories_aliases", "advisories", ["aliases"], postgresql_using="gin"
    )

    # ── nvd_cves ─────────────────────────────────────────────────────────────
    op.create_table(
        "nvd_cves",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("cve_id", sa.String(30), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("cvss_score", sa.Float(), nullable=True),
        sa.Column("cvss_vector", sa.String(255), nullable=True),
        sa.Column("cvss_data", JSONB(), nullable=True),
        sa.Column("cpe_matches", JSONB(), nullable=False, server_default="[]"),
        sa.Column("references_json", JSONB(), nullable=False, server_default="[]"),
        sa.Column("affected_versions", sa.Text(), nullable=True),
        sa.Column("fixed_version", sa.String(255), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vuln_status", sa.String(50), nullable=True),
        sa.Column("sync_batch_id", sa.String(64), nullable=True),
        # Maintained by the NVD syncer, not by the ORM
        sa.Column("description_tsv", TSVECTOR(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_nvd_cves_cve_id", "nvd_cves", ["cve_id"])
    op.create_index("ix_nvd_cves_sync_batch_id", "nvd_cves", ["sync_batch_id"])
    op.create_index(
        "ix_nvd_cves_description_tsv", "nvd_cves", ["description_tsv"], postgresql_using="gin"
    )

    # ── nvd_cpe_index ────────────────────────────────────────────────────────
    op.create_table(
        "nvd_cpe_index",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("cve_id", sa.String(30), nullable=False),
        sa.Column("vendor", sa.String(255), nullable=False),
        sa.Column("product", sa.String(255), nullable=False),
        sa.Column("target_sw", sa.String(255), nullable=True),
        sa.Column("version_exact", sa.String(100), nullable=True),
        sa.Column("version_start_incl", sa.String(100), nullable=True),
        sa.Column("version_start_excl", sa.String(100), nullable=True),
        sa.Column("version_end_incl", sa.String(100), nullable=True),
        sa.Column("version_end_excl", sa.String(100), nullable=True),
    )
    op.create_index("ix_nvd_cpe_index_cve_id", "nvd_cpe_index", ["cve_id"])
    op.create_index("ix_nvd_cpe_index_product", "nvd_cpe_index", ["product"])
    op.create_index(
        "ix_nvd_cpe_index_vendor_product", "nvd_cpe_index", ["vendor", "product"]
    )


def downgrade() -> None:
    op.drop_table("nvd_cpe_index")
    op.drop_table("nvd_cves")
    op.drop_table("advisories")
    op.drop_table("sync_status")
    op.drop_table("notifications")
    op.drop_table("users")
