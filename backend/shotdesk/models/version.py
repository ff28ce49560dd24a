"""
Version and Review Models
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index

from shotdesk.models import Base


class Tier(str, Enum):
    """Review tiers"""

    TIER1 = "tier1"
    TIER2 = "tier2"
    MASTER = "master"


class VersionModel(Base):
    """
    Version - An uploaded or promoted artifact for a shot

    ``version_number`` is 1-based and monotonic per shot. At most one version
    per shot has ``is_active`` set.
    """

    __tablename__ = "versions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shot_id = Column(String, ForeignKey("shots.id"), nullable=False, index=True)
    uploader_id = Column(String, ForeignKey("users.id"), nullable=True)
    version_number = Column(Integer, nullable=False)
    artifact_link = Column(String, nullable=True)  # Drive link
    public_link = Column(String, nullable=True)  # Public storage link
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_version_shot_number", "shot_id", "version_number", unique=True),
    )

    def to_dict(self) -> dict:
        """Convert version model to dictionary"""
        return {
            "id": self.id,
            "shot_id": self.shot_id,
            "uploader_id": self.uploader_id,
            "version_number": self.version_number,
            "artifact_link": self.artifact_link,
            "public_link": self.public_link,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ReviewModel(Base):
    """
    Review - Votes and feedback attached to exactly one version

    A ``None`` vote means the slot has not been cast yet.
    """

    __tablename__ = "reviews"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    version_id = Column(String, ForeignKey("versions.id"), nullable=False, unique=True, index=True)

    # Tier 1 (CD)
    tier1_vote = Column(Boolean, nullable=True)
    tier1_comment = Column(String, nullable=True)
    tier1_image_url = Column(String, nullable=True)
    tier1_voted_at = Column(DateTime, nullable=True)

    # Tier 2 (PM)
    tier2_vote = Column(Boolean, nullable=True)
    tier2_comment = Column(String, nullable=True)
    tier2_image_url = Column(String, nullable=True)
    tier2_voted_at = Column(DateTime, nullable=True)

    # Escalation tier
    master_vote = Column(Boolean, nullable=True)
    master_comment = Column(String, nullable=True)
    master_image_url = Column(String, nullable=True)
    master_voted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def get_vote(self, tier: Tier):
        return getattr(self, f"{Tier(tier).value}_vote")

    @property
    def is_approved(self) -> bool:
        """True once either tier has voted yes (the activation rule)"""
        return self.tier1_vote is True or self.tier2_vote is True

    def to_dict(self) -> dict:
        """Convert review model to dictionary"""
        data = {"id": self.id, "version_id": self.version_id}
        for tier in Tier:
            prefix = tier.value
            voted_at = getattr(self, f"{prefix}_voted_at")
            data[f"{prefix}_vote"] = getattr(self, f"{prefix}_vote")
            data[f"{prefix}_comment"] = getattr(self, f"{prefix}_comment")
            data[f"{prefix}_image_url"] = getattr(self, f"{prefix}_image_url")
            data[f"{prefix}_voted_at"] = voted_at.isoformat() if voted_at else None
        return data
