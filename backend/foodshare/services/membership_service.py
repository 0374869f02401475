"""
Membership workflow engine: groups, join requests and admin-gated transitions.

STATE MACHINE (per group, user)
===============================

  NoRequest --request_join--> Pending --approve--> Approved
                                  |                   |
                                  +--reject--> Rejected   remove / reject
                                                          |
                                                      NoRequest

- Rejected is terminal for that JoinRequest row; the user may request again,
  which creates a new row.
- Approved is not terminal for the Membership row: remove (or a later
  reject) deletes it, and the user may request again.

AUTHORIZATION
=============

Admin status comes from `Group.admin_id` only, through `is_group_admin`.
Moderators get no approval rights. Self-service leave (`acting == user`) is
the one transition a non-admin may perform. The admin's own membership can
be neither rejected nor removed; deleting the group is the way out.

CONCURRENCY
===========

Every transition runs under the per-(group, user) key lock and commits
before releasing it, so two admins approving the same request serialize and
the second one sees an approved membership (a no-op success). Approve also
takes the group key first, which keeps member_limit exact across different
users. Lock order is always group -> membership.

Database backstops: unique (group_id, user_id) on memberships and a partial
unique index on pending join requests. An IntegrityError from a concurrent
writer in another process is treated as transient contention and retried.
"""

from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.errors import Conflict, Forbidden, NotFound
from foodshare.core.logging import get_logger
from foodshare.core.metrics import record_transition
from foodshare.db.base import utcnow
from foodshare.models.group import Group, GroupVisibility
from foodshare.models.join_request import JoinRequest, JoinRequestStatus
from foodshare.models.membership import Membership, MembershipRole, MembershipStatus
from foodshare.models.notification import NotificationKind
from foodshare.models.resource import Resource
from foodshare.schemas.group import GroupCreate, GroupUpdate
from foodshare.services.interfaces.key_lock import group_key, membership_key
from foodshare.services.notification_service import NotificationEvent, notify
from foodshare.services.strategy_factory import get_key_lock

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


def is_group_admin(group: Group, user_id: str) -> bool:
    """The single authorization predicate for admin-gated transitions."""
    return group.admin_id == user_id


async def _get_group(db: AsyncSession, group_id: str) -> Group:
    group = (await db.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
    if group is None:
        raise NotFound(f"Group {group_id} not found")
    return group


async def _get_membership(db: AsyncSession, group_id: str, user_id: str) -> Optional[Membership]:
    result = await db.execute(
        select(Membership).where(Membership.group_id == group_id, Membership.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _get_pending_request(db: AsyncSession, group_id: str, user_id: str) -> Optional[JoinRequest]:
    result = await db.execute(
        select(JoinRequest).where(
            JoinRequest.group_id == group_id,
            JoinRequest.user_id == user_id,
            JoinRequest.status == JoinRequestStatus.PENDING,
        )
    )
    return result.scalar_one_or_none()


def _require_admin(group: Group, acting_user_id: str, operation: str) -> None:
    if not is_group_admin(group, acting_user_id):
        logger.warning(
            "workflow_forbidden",
            operation=operation,
            group_id=group.id,
            acting_user_id=acting_user_id,
        )
        record_transition(operation, Forbidden.code)
        raise Forbidden("Only the group admin can do this")


async def is_approved_member(db: AsyncSession, group_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(Membership.id).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
            Membership.status == MembershipStatus.APPROVED,
        )
    )
    return result.first() is not None


async def approved_group_ids(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(
        select(Membership.group_id).where(
            Membership.user_id == user_id,
            Membership.status == MembershipStatus.APPROVED,
        )
    )
    return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


async def create_group(db: AsyncSession, admin_id: str, group_data: GroupCreate) -> Group:
    """
    Create a group and seed its admin as an approved/admin member in the
    same transaction, so there is no moment where the admin is not a member.
    """
    group = Group(
        name=group_data.name,
        description=group_data.description,
        admin_id=admin_id,
        visibility=group_data.visibility,
        member_limit=group_data.member_limit,
    )
    db.add(group)
    await db.flush()

    db.add(
        Membership(
            group_id=group.id,
            user_id=admin_id,
            status=MembershipStatus.APPROVED,
            role=MembershipRole.ADMIN,
            approved_by=admin_id,
            decided_at=utcnow(),
        )
    )
    await db.commit()
    await db.refresh(group)

    logger.info("group_created", group_id=group.id, admin_id=admin_id, visibility=group.visibility)
    return group


async def get_group(db: AsyncSession, group_id: str, viewer_id: str) -> Group:
    """Private groups are only visible to their members."""
    group = await _get_group(db, group_id)
    if group.visibility == GroupVisibility.PRIVATE and not await is_approved_member(db, group_id, viewer_id):
        raise Forbidden("Only members can see this group")
    return group


async def list_groups(db: AsyncSession, viewer_id: str) -> list[Group]:
    """Public groups plus private groups the viewer belongs to."""
    member_of = select(Membership.group_id).where(
        Membership.user_id == viewer_id,
        Membership.status == MembershipStatus.APPROVED,
    )
    result = await db.execute(
        select(Group)
        .where(or_(Group.visibility == GroupVisibility.PUBLIC, Group.id.in_(member_of)))
        .order_by(Group.created_at.desc())
    )
    return list(result.scalars().all())


async def update_group(
    db: AsyncSession,
    group_id: str,
    acting_user_id: str,
    group_data: GroupUpdate,
) -> Group:
    async with get_key_lock().hold(group_key(group_id)):
        group = await _get_group(db, group_id)
        _require_admin(group, acting_user_id, "update_group")

        for field, value in group_data.model_dump(exclude_unset=True).items():
            if field in ("name", "visibility") and value is None:
                continue
            setattr(group, field, value)

        await db.commit()
        await db.refresh(group)

    logger.info("group_updated", group_id=group_id)
    return group


async def delete_group(db: AsyncSession, group_id: str, acting_user_id: str) -> None:
    """
    Delete a group. Memberships and join requests go with it; resources
    restricted to the group are deactivated (claims still reference them).
    """
    async with get_key_lock().hold(group_key(group_id)):
        group = await _get_group(db, group_id)
        _require_admin(group, acting_user_id, "delete_group")

        deactivated = await db.execute(
            update(Resource)
            .where(Resource.group_id == group_id)
            .values(is_active=False, version=Resource.version + 1)
            .execution_options(synchronize_session="fetch")
        )
        await db.execute(delete(JoinRequest).where(JoinRequest.group_id == group_id))
        await db.execute(delete(Membership).where(Membership.group_id == group_id))
        await db.execute(delete(Group).where(Group.id == group_id))
        await db.commit()

    logger.info(
        "group_deleted",
        group_id=group_id,
        admin_id=acting_user_id,
        resources_deactivated=deactivated.rowcount,
    )


async def list_members(db: AsyncSession, group_id: str, viewer_id: str) -> list[Membership]:
    """Approved members. Private groups only show their roster to members."""
    group = await _get_group(db, group_id)
    if group.visibility == GroupVisibility.PRIVATE and not await is_approved_member(db, group_id, viewer_id):
        raise Forbidden("Only members can see this group's members")

    result = await db.execute(
        select(Membership)
        .where(Membership.group_id == group_id, Membership.status == MembershipStatus.APPROVED)
        .order_by(Membership.created_at.asc())
    )
    return list(result.scalars().all())


async def list_pending_requests(db: AsyncSession, group_id: str, acting_user_id: str) -> list[JoinRequest]:
    group = await _get_group(db, group_id)
    if not is_group_admin(group, acting_user_id):
        raise Forbidden("Only the group admin can review join requests")

    result = await db.execute(
        select(JoinRequest)
        .where(JoinRequest.group_id == group_id, JoinRequest.status == JoinRequestStatus.PENDING)
        .order_by(JoinRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def list_user_requests(db: AsyncSession, user_id: str) -> list[JoinRequest]:
    result = await db.execute(
        select(JoinRequest)
        .where(JoinRequest.user_id == user_id)
        .order_by(JoinRequest.created_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Workflow transitions
# ---------------------------------------------------------------------------


async def request_join(
    db: AsyncSession,
    group_id: str,
    user_id: str,
    message: Optional[str] = None,
) -> JoinRequest:
    """
    NoRequest/Rejected -> Pending.
    Raises Conflict if the user is already an approved member (the admin
    included) or already has a pending request.
    """
    async with get_key_lock().hold(membership_key(group_id, user_id)):
        group = await _get_group(db, group_id)

        membership = await _get_membership(db, group_id, user_id)
        if membership is not None and membership.status == MembershipStatus.APPROVED:
            record_transition("request_join", Conflict.code)
            raise Conflict("You are already a member of this group")

        if await _get_pending_request(db, group_id, user_id) is not None:
            record_transition("request_join", Conflict.code)
            logger.info("join_request_duplicate", group_id=group_id, user_id=user_id)
            raise Conflict("You already have a pending request for this group")

        join_request = JoinRequest(
            group_id=group_id,
            user_id=user_id,
            message=(message or "").strip() or None,
            status=JoinRequestStatus.PENDING,
        )
        db.add(join_request)
        try:
            await db.flush()
        except IntegrityError:
            # Either a pending request was inserted by another process between
            # check and insert, or the group was deleted underneath us
            await db.rollback()
            try:
                await _get_group(db, group_id)
            except NotFound:
                record_transition("request_join", NotFound.code)
                raise
            record_transition("request_join", Conflict.code)
            raise Conflict("You already have a pending request for this group")

        await notify(
            db,
            NotificationEvent(
                kind=NotificationKind.JOIN_REQUEST,
                reference_id=join_request.id,
                group_id=group_id,
                actor_id=user_id,
            ),
            title="New join request",
            message=f"A user asked to join {group.name}",
        )
        await db.commit()
        await db.refresh(join_request)

    record_transition("request_join", "ok")
    logger.info("join_requested", group_id=group_id, user_id=user_id, request_id=join_request.id)
    return join_request


async def approve(db: AsyncSession, group_id: str, user_id: str, acting_admin_id: str) -> Membership:
    """
    Pending -> Approved.

    Re-approving an approved pair returns the existing membership without
    writing anything. Without a pending request there is nothing to approve
    (NotFound).
    """
    lock = get_key_lock()
    async with lock.hold(group_key(group_id)), lock.hold(membership_key(group_id, user_id)):
        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            group = await _get_group(db, group_id)
            _require_admin(group, acting_admin_id, "approve")

            membership = await _get_membership(db, group_id, user_id)
            if membership is not None and membership.status == MembershipStatus.APPROVED:
                record_transition("approve", "noop")
                logger.info("approve_noop", group_id=group_id, user_id=user_id)
                return membership

            join_request = await _get_pending_request(db, group_id, user_id)
            if join_request is None:
                record_transition("approve", NotFound.code)
                raise NotFound("No pending join request for this user")

            if group.member_limit is not None:
                member_count = (
                    await db.execute(
                        select(func.count())
                        .select_from(Membership)
                        .where(
                            Membership.group_id == group_id,
                            Membership.status == MembershipStatus.APPROVED,
                        )
                    )
                ).scalar_one()
                if member_count >= group.member_limit:
                    record_transition("approve", Conflict.code)
                    raise Conflict("Group is full")

            decided_at = utcnow()
            join_request.status = JoinRequestStatus.APPROVED
            join_request.decided_by = acting_admin_id
            join_request.decided_at = decided_at

            if membership is None:
                membership = Membership(group_id=group_id, user_id=user_id)
                db.add(membership)
            membership.status = MembershipStatus.APPROVED
            membership.role = MembershipRole.MEMBER
            membership.approved_by = acting_admin_id
            membership.decided_at = decided_at

            try:
                await db.flush()
            except IntegrityError:
                # Membership row written by another process; re-evaluate
                await db.rollback()
                logger.info("approve_retry", group_id=group_id, user_id=user_id, attempt=attempt)
                continue

            await notify(
                db,
                NotificationEvent(
                    kind=NotificationKind.JOIN_APPROVED,
                    reference_id=join_request.id,
                    group_id=group_id,
                    actor_id=acting_admin_id,
                    subject_id=user_id,
                ),
                title="Join request approved",
                message=f"You are now a member of {group.name}",
            )
            await db.commit()
            await db.refresh(membership)

            record_transition("approve", "ok")
            logger.info(
                "join_approved",
                group_id=group_id,
                user_id=user_id,
                approved_by=acting_admin_id,
                attempt=attempt,
            )
            return membership

    record_transition("approve", Conflict.code)
    raise Conflict("Approval failed due to concurrent updates. Please try again.")


async def reject(
    db: AsyncSession,
    group_id: str,
    user_id: str,
    acting_admin_id: str,
) -> Optional[JoinRequest]:
    """
    Pending -> Rejected, and/or revoke an existing membership.
    Returns the rejected request, or None when only a membership was revoked.
    """
    async with get_key_lock().hold(membership_key(group_id, user_id)):
        group = await _get_group(db, group_id)
        _require_admin(group, acting_admin_id, "reject")
        if is_group_admin(group, user_id):
            record_transition("reject", Forbidden.code)
            raise Forbidden("The group admin cannot be rejected")

        join_request = await _get_pending_request(db, group_id, user_id)
        membership = await _get_membership(db, group_id, user_id)
        if join_request is None and membership is None:
            record_transition("reject", NotFound.code)
            raise NotFound("No pending join request or membership for this user")

        if join_request is not None:
            join_request.status = JoinRequestStatus.REJECTED
            join_request.decided_by = acting_admin_id
            join_request.decided_at = utcnow()
        if membership is not None:
            await db.delete(membership)
        await db.flush()

        await notify(
            db,
            NotificationEvent(
                kind=NotificationKind.JOIN_REJECTED,
                reference_id=join_request.id if join_request is not None else group_id,
                group_id=group_id,
                actor_id=acting_admin_id,
                subject_id=user_id,
            ),
            title="Join request declined",
            message=f"Your request to join {group.name} was declined",
        )
        await db.commit()

    record_transition("reject", "ok")
    logger.info(
        "join_rejected",
        group_id=group_id,
        user_id=user_id,
        rejected_by=acting_admin_id,
        membership_revoked=membership is not None,
    )
    return join_request


async def remove(db: AsyncSession, group_id: str, user_id: str, acting_admin_id: str) -> None:
    """
    Approved -> NoRequest. Admin-only, except that a member may remove
    themselves. Join-request history is left untouched.
    """
    async with get_key_lock().hold(membership_key(group_id, user_id)):
        group = await _get_group(db, group_id)
        self_leave = acting_admin_id == user_id
        if not self_leave:
            _require_admin(group, acting_admin_id, "remove")
        if is_group_admin(group, user_id):
            record_transition("remove", Forbidden.code)
            raise Forbidden("The group admin cannot leave; delete the group instead")

        membership = await _get_membership(db, group_id, user_id)
        if membership is None:
            record_transition("remove", NotFound.code)
            raise NotFound("User is not a member of this group")

        await db.delete(membership)
        await db.flush()

        await notify(
            db,
            NotificationEvent(
                kind=NotificationKind.MEMBER_REMOVED,
                reference_id=group_id,
                group_id=group_id,
                actor_id=acting_admin_id,
                subject_id=user_id,
            ),
            title="Removed from group" if not self_leave else "You left the group",
            message=f"You are no longer a member of {group.name}",
        )
        await db.commit()

    record_transition("remove", "ok")
    logger.info("member_removed", group_id=group_id, user_id=user_id, removed_by=acting_admin_id, self_leave=self_leave)
