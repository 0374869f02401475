from foodshare.models.group import Group, GroupVisibility
from foodshare.models.membership import Membership, MembershipRole, MembershipStatus
from foodshare.models.join_request import JoinRequest, JoinRequestStatus
from foodshare.models.resource import Resource, Visibility
from foodshare.models.claim import Claim
from foodshare.models.notification import Notification, NotificationKind

__all__ = [
    "Group", "GroupVisibility",
    "Membership", "MembershipRole", "MembershipStatus",
    "JoinRequest", "JoinRequestStatus",
    "Resource", "Visibility",
    "Claim",
    "Notification", "NotificationKind",
]
