"""
User, Project and Scene Models
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, ForeignKey

from shotdesk.models import Base


class SceneStatus(str, Enum):
    """Scene workflow status"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CHANGES_REQUESTED = "changes_requested"
    COMPLETE = "complete"


class UserModel(Base):
    """
    User - A crew member with exactly one role (PE, PM or CD)
    """

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, index=True)  # "PE", "PM", "CD"
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Convert user model to dictionary"""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
        }


class ProjectModel(Base):
    """
    Project - Top of the project/scene/shot hierarchy

    ``assigned_pm_id`` is the project's tier-2 reviewer.
    """

    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    folder_id = Column(String, nullable=True)  # External drive folder
    assigned_pm_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Convert project model to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "folder_id": self.folder_id,
            "assigned_pm_id": self.assigned_pm_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SceneModel(Base):
    """Scene - Ordered container of shots within a project"""

    __tablename__ = "scenes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    folder_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default=SceneStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Convert scene model to dictionary"""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "folder_id": self.folder_id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
