"""
Resource model: a shareable, finite-count food post.

Key design decisions:
- `remaining` is denormalized (avoids COUNT over claims) and guarded by CHECK
  constraints so the database refuses overselling even if a writer misbehaves
- `version` column enables optimistic locking for concurrent claims
- Never hard-deleted; `is_active = false` is the soft terminal state
- Composite index on (is_active, expires_at) covers the claimable listing,
  (latitude, longitude) covers the proximity bounding box
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String,
)

from foodshare.db.base import Base, TimestampMixin, new_id


class Visibility:
    PUBLIC = "public"
    GROUP = "group"


class Resource(Base, TimestampMixin):
    __tablename__ = "resources"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location_name = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    capacity = Column(Integer, nullable=False)
    remaining = Column(Integer, nullable=False)
    visibility = Column(String(10), nullable=False, default=Visibility.PUBLIC)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_resource_capacity_positive"),
        CheckConstraint("remaining >= 0", name="check_resource_remaining_non_negative"),
        CheckConstraint("remaining <= capacity", name="check_resource_remaining_lte_capacity"),
        CheckConstraint("visibility IN ('public', 'group')", name="check_resource_visibility"),
        CheckConstraint(
            "(latitude IS NULL) = (longitude IS NULL)",
            name="check_resource_location_pair",
        ),
        Index("ix_resources_active_expires", "is_active", "expires_at"),
        Index("ix_resources_lat_lng", "latitude", "longitude"),
    )

    @property
    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, title={self.title}, remaining={self.remaining}/{self.capacity})>"
