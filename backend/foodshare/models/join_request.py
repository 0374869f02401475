"""
JoinRequest model: a user's ask to become a member of a group.

Key design decisions:
- Distinct from Membership; the request row is history, the membership row
  is standing
- Partial unique index allows many resolved requests per (group, user) but
  at most one pending one
- Transitions out of `pending` exactly once, immutable afterwards
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, text

from foodshare.db.base import Base, TimestampMixin, new_id


class JoinRequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JoinRequest(Base, TimestampMixin):
    __tablename__ = "join_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    message = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default=JoinRequestStatus.PENDING)
    decided_by = Column(String(128), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="check_join_request_status"),
        Index(
            "uq_join_request_pending",
            "group_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<JoinRequest(group={self.group_id}, user={self.user_id}, status={self.status})>"
