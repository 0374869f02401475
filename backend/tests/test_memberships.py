"""
Tests for the membership workflow engine.
"""

import asyncio

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.errors import Conflict, Forbidden, NotFound
from foodshare.models.group import Group
from foodshare.models.join_request import JoinRequest, JoinRequestStatus
from foodshare.models.membership import Membership, MembershipRole, MembershipStatus
from foodshare.models.notification import Notification, NotificationKind
from foodshare.models.resource import Resource, Visibility
from foodshare.schemas.group import GroupCreate, GroupUpdate
from foodshare.services import membership_service

from conftest import OTHER_USER_ID, OWNER_ID, USER_ID, make_resource


async def _notifications(session, recipient_id: str, kind: str) -> list[Notification]:
    result = await session.execute(
        select(Notification).where(Notification.recipient_id == recipient_id, Notification.kind == kind)
    )
    return list(result.scalars().all())


async def _join_and_approve(session, group_id: str, user_id: str) -> Membership:
    await membership_service.request_join(session, group_id, user_id)
    return await membership_service.approve(session, group_id, user_id, OWNER_ID)


@pytest.mark.asyncio
async def test_create_group_seeds_admin_membership(db_session, test_group):
    membership = (
        await db_session.execute(
            select(Membership).where(Membership.group_id == test_group.id, Membership.user_id == OWNER_ID)
        )
    ).scalar_one()

    assert test_group.admin_id == OWNER_ID
    assert membership.status == MembershipStatus.APPROVED
    assert membership.role == MembershipRole.ADMIN
    assert await membership_service.is_approved_member(db_session, test_group.id, OWNER_ID)


@pytest.mark.asyncio
async def test_membership_rows_are_always_approved(db_session, test_group):
    """Pending and rejected are join-request states; the table refuses them."""
    db_session.add(Membership(group_id=test_group.id, user_id=USER_ID, status="pending"))
    with pytest.raises(IntegrityError):
        await db_session.flush()
    await db_session.rollback()

    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)


@pytest.mark.asyncio
async def test_request_approve_workflow(db_session, test_group):
    """Request notifies the admin, approval notifies the user, re-approval is a no-op."""
    join_request = await membership_service.request_join(db_session, test_group.id, USER_ID, "Hi!")
    assert join_request.status == JoinRequestStatus.PENDING
    assert join_request.message == "Hi!"

    admin_notes = await _notifications(db_session, OWNER_ID, NotificationKind.JOIN_REQUEST)
    assert len(admin_notes) == 1
    assert admin_notes[0].reference_id == join_request.id

    membership = await membership_service.approve(db_session, test_group.id, USER_ID, OWNER_ID)
    assert membership.status == MembershipStatus.APPROVED
    assert membership.role == MembershipRole.MEMBER
    assert membership.approved_by == OWNER_ID
    assert await membership_service.is_approved_member(db_session, test_group.id, USER_ID)
    assert len(await _notifications(db_session, USER_ID, NotificationKind.JOIN_APPROVED)) == 1

    again = await membership_service.approve(db_session, test_group.id, USER_ID, OWNER_ID)
    assert again.id == membership.id
    assert len(await _notifications(db_session, USER_ID, NotificationKind.JOIN_APPROVED)) == 1

    refreshed = (
        await db_session.execute(select(JoinRequest).where(JoinRequest.id == join_request.id))
    ).scalar_one()
    assert refreshed.status == JoinRequestStatus.APPROVED
    assert refreshed.decided_by == OWNER_ID


@pytest.mark.asyncio
async def test_double_request_join_conflicts(db_session, test_group):
    await membership_service.request_join(db_session, test_group.id, USER_ID)

    with pytest.raises(Conflict):
        await membership_service.request_join(db_session, test_group.id, USER_ID)

    count = (
        await db_session.execute(
            select(func.count()).select_from(JoinRequest).where(JoinRequest.user_id == USER_ID)
        )
    ).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_request_join_as_member_conflicts(db_session, test_group):
    with pytest.raises(Conflict):
        await membership_service.request_join(db_session, test_group.id, OWNER_ID)


@pytest.mark.asyncio
async def test_request_join_unknown_group(db_session):
    with pytest.raises(NotFound):
        await membership_service.request_join(db_session, "missing-group", USER_ID)


@pytest.mark.asyncio
async def test_approve_requires_admin(db_session, test_group):
    await membership_service.request_join(db_session, test_group.id, USER_ID)

    with pytest.raises(Forbidden):
        await membership_service.approve(db_session, test_group.id, USER_ID, OTHER_USER_ID)

    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)


@pytest.mark.asyncio
async def test_approve_without_request(db_session, test_group):
    with pytest.raises(NotFound):
        await membership_service.approve(db_session, test_group.id, USER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_approve_respects_member_limit(db_session):
    group = await membership_service.create_group(
        db_session, OWNER_ID, GroupCreate(name="Small kitchen", member_limit=2)
    )
    await _join_and_approve(db_session, group.id, USER_ID)
    await membership_service.request_join(db_session, group.id, OTHER_USER_ID)

    with pytest.raises(Conflict):
        await membership_service.approve(db_session, group.id, OTHER_USER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_concurrent_approvals_create_one_membership(session_factory, db_session, test_group):
    """Two approve calls race: both succeed, one membership, one notification."""
    group_id = test_group.id
    await membership_service.request_join(db_session, group_id, USER_ID)

    async def attempt():
        async with session_factory() as session:
            return await membership_service.approve(session, group_id, USER_ID, OWNER_ID)

    results = await asyncio.gather(attempt(), attempt())
    assert results[0].id == results[1].id

    async with session_factory() as session:
        members = (
            await session.execute(
                select(func.count()).select_from(Membership).where(
                    Membership.group_id == group_id, Membership.user_id == USER_ID
                )
            )
        ).scalar_one()
        assert members == 1
        assert len(await _notifications(session, USER_ID, NotificationKind.JOIN_APPROVED)) == 1


@pytest.mark.asyncio
async def test_approve_recovers_when_membership_written_elsewhere(
    monkeypatch, session_factory, db_session, test_group
):
    """Another process inserts the membership between the check and the flush."""
    group_id = test_group.id
    await membership_service.request_join(db_session, group_id, USER_ID)

    original_flush = AsyncSession.flush
    written = False

    async def flush_after_foreign_approval(self, objects=None):
        nonlocal written
        if not written and any(isinstance(obj, Membership) for obj in self.new):
            written = True
            async with session_factory() as other:
                other.add(
                    Membership(
                        group_id=group_id,
                        user_id=USER_ID,
                        status=MembershipStatus.APPROVED,
                        role=MembershipRole.MEMBER,
                        approved_by=OWNER_ID,
                    )
                )
                await other.commit()
        await original_flush(self, objects)

    monkeypatch.setattr(AsyncSession, "flush", flush_after_foreign_approval)

    membership = await membership_service.approve(db_session, group_id, USER_ID, OWNER_ID)

    assert written
    assert membership.status == MembershipStatus.APPROVED
    async with session_factory() as session:
        members = (
            await session.execute(
                select(func.count()).select_from(Membership).where(
                    Membership.group_id == group_id, Membership.user_id == USER_ID
                )
            )
        ).scalar_one()
        assert members == 1


@pytest.mark.asyncio
async def test_request_join_group_deleted_concurrently(monkeypatch, session_factory, db_session, test_group):
    """The group disappears between the existence check and the insert: NotFound, not Conflict."""
    group_id = test_group.id
    original_flush = AsyncSession.flush

    async def flush_after_group_deleted(self, objects=None):
        if any(isinstance(obj, JoinRequest) for obj in self.new):
            async with session_factory() as other:
                await other.execute(delete(Group).where(Group.id == group_id))
                await other.commit()
        await original_flush(self, objects)

    monkeypatch.setattr(AsyncSession, "flush", flush_after_group_deleted)

    with pytest.raises(NotFound):
        await membership_service.request_join(db_session, group_id, USER_ID)


@pytest.mark.asyncio
async def test_reject_pending_request(db_session, test_group):
    join_request = await membership_service.request_join(db_session, test_group.id, USER_ID)

    rejected = await membership_service.reject(db_session, test_group.id, USER_ID, OWNER_ID)

    assert rejected.id == join_request.id
    assert rejected.status == JoinRequestStatus.REJECTED
    assert rejected.decided_by == OWNER_ID
    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)
    assert len(await _notifications(db_session, USER_ID, NotificationKind.JOIN_REJECTED)) == 1


@pytest.mark.asyncio
async def test_request_again_after_rejection(db_session, test_group):
    await membership_service.request_join(db_session, test_group.id, USER_ID)
    await membership_service.reject(db_session, test_group.id, USER_ID, OWNER_ID)

    second = await membership_service.request_join(db_session, test_group.id, USER_ID)
    assert second.status == JoinRequestStatus.PENDING

    history = await membership_service.list_user_requests(db_session, USER_ID)
    assert sorted(r.status for r in history) == [JoinRequestStatus.PENDING, JoinRequestStatus.REJECTED]


@pytest.mark.asyncio
async def test_reject_revokes_membership(db_session, test_group):
    await _join_and_approve(db_session, test_group.id, USER_ID)

    result = await membership_service.reject(db_session, test_group.id, USER_ID, OWNER_ID)

    assert result is None
    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)


@pytest.mark.asyncio
async def test_reject_nothing(db_session, test_group):
    with pytest.raises(NotFound):
        await membership_service.reject(db_session, test_group.id, USER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_reject_admin_forbidden(db_session, test_group):
    with pytest.raises(Forbidden):
        await membership_service.reject(db_session, test_group.id, OWNER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_reject_requires_admin(db_session, test_group):
    await membership_service.request_join(db_session, test_group.id, USER_ID)

    with pytest.raises(Forbidden):
        await membership_service.reject(db_session, test_group.id, USER_ID, USER_ID)


@pytest.mark.asyncio
async def test_remove_member(db_session, test_group):
    await _join_and_approve(db_session, test_group.id, USER_ID)

    await membership_service.remove(db_session, test_group.id, USER_ID, OWNER_ID)

    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)
    assert len(await _notifications(db_session, USER_ID, NotificationKind.MEMBER_REMOVED)) == 1

    # Removal returns the pair to NoRequest, so a new request is accepted
    again = await membership_service.request_join(db_session, test_group.id, USER_ID)
    assert again.status == JoinRequestStatus.PENDING


@pytest.mark.asyncio
async def test_member_can_leave(db_session, test_group):
    await _join_and_approve(db_session, test_group.id, USER_ID)

    await membership_service.remove(db_session, test_group.id, USER_ID, USER_ID)

    assert not await membership_service.is_approved_member(db_session, test_group.id, USER_ID)


@pytest.mark.asyncio
async def test_remove_other_member_requires_admin(db_session, test_group):
    await _join_and_approve(db_session, test_group.id, USER_ID)
    await _join_and_approve(db_session, test_group.id, OTHER_USER_ID)

    with pytest.raises(Forbidden):
        await membership_service.remove(db_session, test_group.id, OTHER_USER_ID, USER_ID)


@pytest.mark.asyncio
async def test_remove_non_member(db_session, test_group):
    with pytest.raises(NotFound):
        await membership_service.remove(db_session, test_group.id, USER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_admin_cannot_be_removed(db_session, test_group):
    with pytest.raises(Forbidden):
        await membership_service.remove(db_session, test_group.id, OWNER_ID, OWNER_ID)


@pytest.mark.asyncio
async def test_list_pending_requests_admin_only(db_session, test_group):
    await membership_service.request_join(db_session, test_group.id, USER_ID)

    pending = await membership_service.list_pending_requests(db_session, test_group.id, OWNER_ID)
    assert [r.user_id for r in pending] == [USER_ID]

    with pytest.raises(Forbidden):
        await membership_service.list_pending_requests(db_session, test_group.id, USER_ID)


@pytest.mark.asyncio
async def test_private_group_hidden_from_non_members(db_session):
    group = await membership_service.create_group(
        db_session, OWNER_ID, GroupCreate(name="Family", visibility="private")
    )

    with pytest.raises(Forbidden):
        await membership_service.list_members(db_session, group.id, USER_ID)
    with pytest.raises(Forbidden):
        await membership_service.get_group(db_session, group.id, USER_ID)
    assert group.id not in {g.id for g in await membership_service.list_groups(db_session, USER_ID)}

    members = await membership_service.list_members(db_session, group.id, OWNER_ID)
    assert [m.user_id for m in members] == [OWNER_ID]

    await membership_service.request_join(db_session, group.id, USER_ID)
    await membership_service.approve(db_session, group.id, USER_ID, OWNER_ID)
    assert (await membership_service.get_group(db_session, group.id, USER_ID)).id == group.id


@pytest.mark.asyncio
async def test_update_group(db_session, test_group):
    updated = await membership_service.update_group(
        db_session, test_group.id, OWNER_ID, GroupUpdate(description="Weekly potluck")
    )
    assert updated.description == "Weekly potluck"
    assert updated.name == "Kochi neighbours"

    with pytest.raises(Forbidden):
        await membership_service.update_group(db_session, test_group.id, USER_ID, GroupUpdate(name="Mine"))


@pytest.mark.asyncio
async def test_delete_group_deactivates_resources(db_session, session_factory, test_group):
    group_id = test_group.id
    await _join_and_approve(db_session, group_id, USER_ID)
    resource = await make_resource(db_session, visibility=Visibility.GROUP, group_id=group_id)
    resource_id = resource.id

    with pytest.raises(Forbidden):
        await membership_service.delete_group(db_session, group_id, USER_ID)

    await membership_service.delete_group(db_session, group_id, OWNER_ID)

    async with session_factory() as session:
        stored = (await session.execute(select(Resource).where(Resource.id == resource_id))).scalar_one()
        assert stored.is_active is False
        remaining_members = (
            await session.execute(
                select(func.count()).select_from(Membership).where(Membership.group_id == group_id)
            )
        ).scalar_one()
        assert remaining_members == 0

    with pytest.raises(NotFound):
        await membership_service.get_group(db_session, group_id, OWNER_ID)
