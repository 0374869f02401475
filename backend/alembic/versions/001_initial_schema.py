"""Initial schema: groups, memberships, join requests, resources, claims, notifications.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Groups table
    op.create_table(
        "groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("admin_id", sa.String(128), nullable=False),
        sa.Column("visibility", sa.String(10), nullable=False, server_default=sa.text("'public'")),
        sa.Column("member_limit", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("visibility IN ('public', 'private')", name="check_group_visibility"),
        sa.CheckConstraint("member_limit IS NULL OR member_limit > 0", name="check_group_member_limit_positive"),
    )
    op.create_index("ix_groups_admin_id", "groups", ["admin_id"])

    # Memberships table
    op.create_table(
        "memberships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'approved'")),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'member'")),
        sa.Column("approved_by", sa.String(128), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("group_id", "user_id", name="uq_membership_group_user"),
        sa.CheckConstraint("status = 'approved'", name="check_membership_status"),
        sa.CheckConstraint("role IN ('admin', 'moderator', 'member')", name="check_membership_role"),
    )
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])

    # Join requests table
    op.create_table(
        "join_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("message", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("decided_by", sa.String(128), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="check_join_request_status"),
    )
    op.create_index("ix_join_requests_group_id", "join_requests", ["group_id"])
    op.create_index("ix_join_requests_user_id", "join_requests", ["user_id"])
    # At most one pending request per (group, user); resolved ones are history
    op.create_index(
        "uq_join_request_pending",
        "join_requests",
        ["group_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    # Resources table
    op.create_table(
        "resources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("location_name", sa.String(255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("remaining", sa.Integer(), nullable=False),
        sa.Column("visibility", sa.String(10), nullable=False, server_default=sa.text("'public'")),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_resource_capacity_positive"),
        sa.CheckConstraint("remaining >= 0", name="check_resource_remaining_non_negative"),
        sa.CheckConstraint("remaining <= capacity", name="check_resource_remaining_lte_capacity"),
        sa.CheckConstraint("visibility IN ('public', 'group')", name="check_resource_visibility"),
        sa.CheckConstraint("(latitude IS NULL) = (longitude IS NULL)", name="check_resource_location_pair"),
    )
    op.create_index("ix_resources_owner_id", "resources", ["owner_id"])
    op.create_index("ix_resources_group_id", "resources", ["group_id"])
    # Claimable listing: WHERE is_active AND expires_at > now()
    op.create_index("ix_resources_active_expires", "resources", ["is_active", "expires_at"])
    # Proximity bounding box pre-filter
    op.create_index("ix_resources_lat_lng", "resources", ["latitude", "longitude"])

    # Claims table
    op.create_table(
        "claims",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("resource_id", sa.String(36), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("claimant_id", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("resource_id", "claimant_id", name="uq_claim_resource_claimant"),
    )
    op.create_index("ix_claims_resource_id", "claims", ["resource_id"])
    op.create_index("ix_claims_claimant_id", "claims", ["claimant_id"])

    # Notifications table
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recipient_id", sa.String(128), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.String(1000), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "kind IN ('new-resource', 'claim-confirmed', 'join-request', "
            "'join-approved', 'join-rejected', 'member-removed')",
            name="check_notification_kind",
        ),
    )
    op.create_index("ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at"])
    op.create_index("ix_notifications_recipient_unread", "notifications", ["recipient_id", "is_read"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("claims")
    op.drop_table("resources")
    op.drop_table("join_requests")
    op.drop_table("memberships")
    op.drop_table("groups")
