"""
Notification model: one row per recipient per domain event.
Written only by the notifier; only the recipient flips `is_read`.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String

from foodshare.db.base import Base, new_id, utcnow


class NotificationKind:
    NEW_RESOURCE = "new-resource"
    CLAIM_CONFIRMED = "claim-confirmed"
    JOIN_REQUEST = "join-request"
    JOIN_APPROVED = "join-approved"
    JOIN_REJECTED = "join-rejected"
    MEMBER_REMOVED = "member-removed"

    ALL = (
        NEW_RESOURCE,
        CLAIM_CONFIRMED,
        JOIN_REQUEST,
        JOIN_APPROVED,
        JOIN_REJECTED,
        MEMBER_REMOVED,
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    recipient_id = Column(String(128), nullable=False)
    kind = Column(String(32), nullable=False)
    reference_id = Column(String(36), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "kind IN (" + ", ".join(f"'{kind}'" for kind in NotificationKind.ALL) + ")",
            name="check_notification_kind",
        ),
        # Inbox query: recipient's newest first, optionally unread only
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, recipient={self.recipient_id}, kind={self.kind})>"
