"""
Group model: an access-control boundary with exactly one admin.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String

from foodshare.db.base import Base, TimestampMixin, new_id


class GroupVisibility:
    PUBLIC = "public"
    PRIVATE = "private"


class Group(Base, TimestampMixin):
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    admin_id = Column(String(128), nullable=False, index=True)
    visibility = Column(String(10), nullable=False, default=GroupVisibility.PUBLIC)
    member_limit = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("visibility IN ('public', 'private')", name="check_group_visibility"),
        CheckConstraint("member_limit IS NULL OR member_limit > 0", name="check_group_member_limit_positive"),
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name}, admin={self.admin_id})>"
