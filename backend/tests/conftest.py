"""
Pytest Configuration and Fixtures
"""

import os
import tempfile
from types import SimpleNamespace
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from shotdesk.models import Base
from shotdesk.models import notification, project, shot, version  # noqa: F401
from shotdesk.models.actor import ActorContext, Role
from shotdesk.models.project import ProjectModel, SceneModel, UserModel
from shotdesk.models.shot import ShotModel
from shotdesk.services.notification_router import NotificationRouter
from tests.fixtures.fakes import FakeGenerationClient, FakeRedis, FakeSyncClient


@pytest.fixture
def test_db_path() -> Generator[str, None, None]:
    """Create temporary database file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def test_db_engine(test_db_path: str) -> Generator:
    """Create test database engine"""
    engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test database"""
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(test_db_session: Session):
    """
    One project with one scene of three shots

    Users: two PEs, one PM (the project's tier-2 reviewer), two CDs.
    Shot_1 and Shot_2 are assigned to ``pe``, Shot_3 to ``other_pe``.
    """
    db = test_db_session
    users = {
        "pe": UserModel(email="pe@example.com", role="PE"),
        "other_pe": UserModel(email="pe2@example.com", role="PE"),
        "pm": UserModel(email="pm@example.com", role="PM"),
        "cd": UserModel(email="cd@example.com", role="CD"),
        "cd2": UserModel(email="cd2@example.com", role="CD"),
    }
    db.add_all(users.values())
    db.flush()

    project_row = ProjectModel(name="Harbour", folder_id="drive-project", assigned_pm_id=users["pm"].id)
    db.add(project_row)
    db.flush()
    scene_row = SceneModel(project_id=project_row.id, name="Scene_1", folder_id="drive-scene")
    db.add(scene_row)
    db.flush()

    shots = []
    for index, assignee in enumerate(["pe", "pe", "other_pe"]):
        shot_row = ShotModel(
            scene_id=scene_row.id,
            name=f"Shot_{index + 1}",
            sequence=index,
            folder_id=f"drive-shot-{index + 1}",
            assigned_pe_id=users[assignee].id,
        )
        db.add(shot_row)
        shots.append(shot_row)
    db.commit()

    return SimpleNamespace(
        users=users,
        project=project_row,
        scene=scene_row,
        shots=shots,
    )


def _actor(user: UserModel) -> ActorContext:
    return ActorContext(user_id=user.id, role=Role(user.role), email=user.email)


@pytest.fixture
def pe_actor(seeded) -> ActorContext:
    return _actor(seeded.users["pe"])


@pytest.fixture
def pm_actor(seeded) -> ActorContext:
    return _actor(seeded.users["pm"])


@pytest.fixture
def cd_actor(seeded) -> ActorContext:
    return _actor(seeded.users["cd"])


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def sync_client() -> FakeSyncClient:
    return FakeSyncClient()


@pytest.fixture
def notifier(session_factory) -> NotificationRouter:
    return NotificationRouter(session_factory=session_factory)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
