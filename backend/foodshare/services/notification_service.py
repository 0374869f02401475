"""
Notifier: turns a state transition into per-recipient notification rows.

DELIVERY GUARANTEES
===================

Rows are added to the *triggering* operation's session and flushed, never
committed here. They therefore become visible in the same commit as the
transition that caused them: a reader can never see an approval without its
notification, and a rolled-back claim leaves no orphan notification.

Fan-out is bounded by group size (new-resource goes to the approved members
of one group). There is no dedup key: delivery is at-least-once and clients
dedup on (kind, reference_id) if they retry.

Recipient rules:
  new-resource      approved members of the group, minus the poster
  join-request      the group's admin
  join-approved     the requester
  join-rejected     the requester
  member-removed    the removed user
  claim-confirmed   the claimant
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.errors import Forbidden, NotFound
from foodshare.core.logging import get_logger
from foodshare.core.metrics import record_notifications
from foodshare.models.group import Group
from foodshare.models.membership import Membership, MembershipStatus
from foodshare.models.notification import Notification, NotificationKind

logger = get_logger(__name__)

_SUBJECT_KINDS = {
    NotificationKind.CLAIM_CONFIRMED,
    NotificationKind.JOIN_APPROVED,
    NotificationKind.JOIN_REJECTED,
    NotificationKind.MEMBER_REMOVED,
}


@dataclass(frozen=True)
class NotificationEvent:
    """A domain event worth telling someone about."""

    kind: str
    reference_id: str
    group_id: Optional[str] = None
    actor_id: Optional[str] = None
    subject_id: Optional[str] = None


async def resolve_recipients(db: AsyncSession, event: NotificationEvent) -> list[str]:
    """Apply the recipient rules for `event.kind`."""
    if event.kind == NotificationKind.NEW_RESOURCE:
        if event.group_id is None:
            return []
        result = await db.execute(
            select(Membership.user_id)
            .where(
                Membership.group_id == event.group_id,
                Membership.status == MembershipStatus.APPROVED,
            )
            .order_by(Membership.created_at.asc())
        )
        return [uid for uid in result.scalars().all() if uid != event.actor_id]

    if event.kind == NotificationKind.JOIN_REQUEST:
        admin_id = (
            await db.execute(select(Group.admin_id).where(Group.id == event.group_id))
        ).scalar_one_or_none()
        return [admin_id] if admin_id else []

    if event.kind in _SUBJECT_KINDS:
        return [event.subject_id] if event.subject_id else []

    raise ValueError(f"Unknown notification kind: {event.kind}")


async def notify(
    db: AsyncSession,
    event: NotificationEvent,
    title: str,
    message: str,
) -> list[Notification]:
    """
    Create one notification row per resolved recipient in the caller's
    transaction. The caller commits.
    """
    recipients = list(dict.fromkeys(await resolve_recipients(db, event)))
    notifications = [
        Notification(
            recipient_id=recipient_id,
            kind=event.kind,
            reference_id=event.reference_id,
            title=title,
            message=message,
            is_read=False,
        )
        for recipient_id in recipients
    ]
    if notifications:
        db.add_all(notifications)
        await db.flush()

    record_notifications(event.kind, len(notifications))
    logger.info(
        "notifications_created",
        kind=event.kind,
        reference_id=event.reference_id,
        recipients=len(notifications),
    )
    return notifications


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    """A user's inbox, newest first."""
    query = select(Notification).where(Notification.recipient_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, notification_id: str, user_id: str) -> Notification:
    """Mark one notification read. Only its recipient may do so; repeat calls are no-ops."""
    notification = (
        await db.execute(select(Notification).where(Notification.id == notification_id))
    ).scalar_one_or_none()

    if notification is None:
        raise NotFound(f"Notification {notification_id} not found")
    if notification.recipient_id != user_id:
        logger.warning("mark_read_forbidden", notification_id=notification_id, user_id=user_id)
        raise Forbidden("You can only mark your own notifications as read")

    if not notification.is_read:
        notification.is_read = True
        await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
    return result.rowcount


async def unread_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()
