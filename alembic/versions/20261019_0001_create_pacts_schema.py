# mypy: ignore-errors
"""
Migration Alembic pour créer le schéma des pacts.

Tables: pacticipants, versions, tags, pact_versions, pact_publications,
latest_pact_publication_ids_for_consumer_versions, verifications, triggered_webhooks.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Applique la migration: crée les tables du registre de pacts."""
    op.create_table(
        "pacticipants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "versions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("number", sa.String(length=255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("pacticipant_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("pacticipant_id", "number", name="uq_ver_ppt_number"),
        sa.UniqueConstraint("pacticipant_id", "order", name="uq_ver_ppt_order"),
    )
    op.create_table(
        "tags",
        sa.Column("version_id", sa.Integer(), sa.ForeignKey("versions.id"), primary_key=True),
        sa.Column("name", sa.String(length=255), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "pact_versions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("consumer_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column("sha", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("consumer_id", "provider_id", "sha", name="uq_pact_version_sha"),
    )
    op.create_table(
        "pact_publications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "consumer_version_id", sa.Integer(), sa.ForeignKey("versions.id"), nullable=False
        ),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column("consumer_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column(
            "pact_version_id", sa.Integer(), sa.ForeignKey("pact_versions.id"), nullable=False
        ),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "consumer_version_id", "provider_id", "revision_number", name="uq_pact_pub_revision"
        ),
    )
    op.create_table(
        "latest_pact_publication_ids_for_consumer_versions",
        sa.Column(
            "consumer_version_id", sa.Integer(), sa.ForeignKey("versions.id"), primary_key=True
        ),
        sa.Column(
            "provider_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), primary_key=True
        ),
        sa.Column("consumer_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column(
            "pact_publication_id",
            sa.Integer(),
            sa.ForeignKey("pact_publications.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "pact_version_id", sa.Integer(), sa.ForeignKey("pact_versions.id"), nullable=False
        ),
    )
    op.create_table(
        "verifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "pact_version_id", sa.Integer(), sa.ForeignKey("pact_versions.id"), nullable=False
        ),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("pacticipants.id"), nullable=False),
        sa.Column(
            "provider_version_id", sa.Integer(), sa.ForeignKey("versions.id"), nullable=False
        ),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "triggered_webhooks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("webhook_uuid", sa.String(length=64), nullable=False),
        sa.Column(
            "pact_publication_id",
            sa.Integer(),
            sa.ForeignKey("pact_publications.id"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    """Annule la migration en supprimant les tables dans l'ordre inverse des dépendances."""
    for table in (
        "triggered_webhooks",
        "verifications",
        "latest_pact_publication_ids_for_consumer_versions",
        "pact_publications",
        "pact_versions",
        "tags",
        "versions",
        "pacticipants",
    ):
        op.drop_table(table)
