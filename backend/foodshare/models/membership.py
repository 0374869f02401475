"""
Membership model: a user's standing within a group.

At most one row per (group_id, user_id). Rows are created when a join
request is approved, or for the admin inside the group-creation transaction.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, UniqueConstraint

from foodshare.db.base import Base, new_id, utcnow


class MembershipStatus:
    # Pending and rejected live on JoinRequest; a membership row is standing
    APPROVED = "approved"


class MembershipRole:
    ADMIN = "admin"
    MODERATOR = "moderator"  # informational only, grants no approval rights
    MEMBER = "member"


class Membership(Base):
    __tablename__ = "memberships"

    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=MembershipStatus.APPROVED)
    role = Column(String(20), nullable=False, default=MembershipRole.MEMBER)
    approved_by = Column(String(128), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_membership_group_user"),
        CheckConstraint("status = 'approved'", name="check_membership_status"),
        CheckConstraint("role IN ('admin', 'moderator', 'member')", name="check_membership_role"),
    )

    def __repr__(self) -> str:
        return f"<Membership(group={self.group_id}, user={self.user_id}, status={self.status}, role={self.role})>"
