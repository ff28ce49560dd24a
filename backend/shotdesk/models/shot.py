"""
Shot Model
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, JSON, DateTime, Boolean, ForeignKey, Index

from shotdesk.models import Base


class ShotModel(Base):
    """
    Shot - A single deliverable within a scene

    ``sequence`` is dense (0..N-1) across the scene's non-deleted shots.
    Soft-deleted shots keep their last sequence value.
    """

    __tablename__ = "shots"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    scene_id = Column(String, ForeignKey("scenes.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sequence = Column(Integer, nullable=False, default=0)

    # Drive folder the active artifact is published to
    folder_id = Column(String, nullable=True)

    # Assignee / reviewer-of-record (PE)
    assigned_pe_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)

    # References
    storyboard_url = Column(String, nullable=True)
    storyboard_uploader_id = Column(String, nullable=True)
    style_url = Column(String, nullable=True)
    background_urls = Column(JSON, nullable=True)

    # Trash
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_shot_scene_sequence", "scene_id", "sequence"),
    )

    def to_dict(self) -> dict:
        """Convert shot model to dictionary"""
        return {
            "id": self.id,
            "scene_id": self.scene_id,
            "name": self.name,
            "sequence": self.sequence,
            "folder_id": self.folder_id,
            "assigned_pe_id": self.assigned_pe_id,
            "storyboard_url": self.storyboard_url,
            "style_url": self.style_url,
            "background_urls": list(self.background_urls or []),
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
