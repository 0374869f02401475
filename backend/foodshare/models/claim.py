"""
Claim model: one user's reservation of one portion of a resource.

Unique constraint on (resource_id, claimant_id) means a user can hold at
most one claim per resource, whatever the interleaving of requests.
Rows are never updated; retraction deletes them.
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from foodshare.db.base import Base, new_id, utcnow


class Claim(Base):
    __tablename__ = "claims"

    id = Column(String(36), primary_key=True, default=new_id)
    resource_id = Column(String(36), ForeignKey("resources.id"), nullable=False, index=True)
    claimant_id = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("resource_id", "claimant_id", name="uq_claim_resource_claimant"),
    )

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, resource={self.resource_id}, claimant={self.claimant_id})>"
