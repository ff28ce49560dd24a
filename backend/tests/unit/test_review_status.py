"""
Unit Tests for review status derivations
"""

from datetime import datetime

import pytest

from shotdesk.models.actor import Role
from shotdesk.models.project import SceneModel
from shotdesk.models.shot import ShotModel
from shotdesk.models.version import ReviewModel, VersionModel
from shotdesk.services.review_status import (
    AssignmentStatus,
    ShotColor,
    assignment_status,
    master_listing,
    natural_key,
    progress_percent,
    project_progress,
    qualifies_for_master,
    shot_color,
)


def _review(tier1=None, tier2=None, master=None) -> ReviewModel:
    return ReviewModel(tier1_vote=tier1, tier2_vote=tier2, master_vote=master)


def _add_version(db, shot, active=True, tier1=None, tier2=None, number=1) -> VersionModel:
    version = VersionModel(
        shot_id=shot.id,
        version_number=number,
        artifact_link=f"https://drive.example.com/{shot.name}/v{number}",
        is_active=active,
    )
    db.add(version)
    db.flush()
    db.add(ReviewModel(version_id=version.id, tier1_vote=tier1, tier2_vote=tier2))
    db.commit()
    return version


class TestShotColor:
    """Test suite for shot_color"""

    def test_no_active_version_is_gray(self):
        assert shot_color(None) == ShotColor.GRAY

    def test_tier1_approval_wins(self):
        assert shot_color(_review(tier1=True, tier2=False)) == ShotColor.GREEN

    def test_any_rejection_is_red(self):
        assert shot_color(_review(tier1=False)) == ShotColor.RED
        assert shot_color(_review(tier2=False)) == ShotColor.RED

    def test_waiting_is_yellow(self):
        assert shot_color(_review()) == ShotColor.YELLOW
        # Tier-2 approval alone is still waiting on tier 1
        assert shot_color(_review(tier2=True)) == ShotColor.YELLOW


class TestAssignmentStatus:
    """Test suite for assignment_status"""

    def test_not_started(self):
        assert assignment_status(None) == AssignmentStatus.NOT_STARTED

    def test_pending(self):
        assert assignment_status(_review()) == AssignmentStatus.PENDING

    def test_tier1_decides_first(self):
        assert assignment_status(_review(tier1=False, tier2=True)) == AssignmentStatus.REJECTED
        assert assignment_status(_review(tier1=True, tier2=False)) == AssignmentStatus.APPROVED

    def test_tier2_when_tier1_silent(self):
        assert assignment_status(_review(tier2=True)) == AssignmentStatus.APPROVED
        assert assignment_status(_review(tier2=False)) == AssignmentStatus.REJECTED


class TestProgress:
    """Test suite for progress_percent"""

    def test_no_shots(self):
        assert progress_percent(Role.PM, []) == 0
        assert progress_percent(Role.PE, []) == 0

    def test_pm_counts_tier1_only(self):
        reviews = [_review(tier1=True), _review(tier2=True), None]

        assert progress_percent(Role.PM, reviews) == 33

    def test_rounds_half_up(self):
        reviews = [_review(tier1=True)] + [None] * 7

        assert progress_percent(Role.PM, reviews) == 13

    def test_other_roles_count_both_tiers(self):
        reviews = [_review(tier1=True), _review(tier2=True), None]

        assert progress_percent(Role.PE, reviews) == 67
        assert progress_percent(Role.CD, reviews) == 67

    def test_double_approval_counts_twice(self):
        reviews = [_review(tier1=True, tier2=True), None]

        assert progress_percent(Role.PE, reviews) == 100

    def test_clamped_at_100(self):
        reviews = [_review(tier1=True, tier2=True)]

        assert progress_percent(Role.PE, reviews) == 100
        assert progress_percent(Role.PM, reviews) == 100


class TestMasterEligibility:
    """Test suite for qualifies_for_master and natural_key"""

    @pytest.mark.parametrize(
        "tier1,tier2,expected",
        [
            (True, None, True),
            (True, False, True),
            (None, True, True),
            (False, True, False),
            (None, None, False),
            (None, False, False),
        ],
    )
    def test_qualifies(self, tier1, tier2, expected):
        assert qualifies_for_master(_review(tier1=tier1, tier2=tier2)) is expected

    def test_no_review(self):
        assert not qualifies_for_master(None)

    def test_natural_key_orders_numbers(self):
        names = ["Shot_10", "Shot_2", "shot_1", "Shot_1a"]

        assert sorted(names, key=natural_key) == ["shot_1", "Shot_1a", "Shot_2", "Shot_10"]


class TestMasterListing:
    """Test suite for master_listing"""

    def test_lists_eligible_active_versions_in_natural_order(self, seeded, test_db_session):
        db = test_db_session
        shot_a, shot_b, shot_c = seeded.shots
        shot_a.name, shot_b.name = "Shot_10", "Shot_2"
        db.commit()

        later_scene = SceneModel(project_id=seeded.project.id, name="Scene_10")
        db.add(later_scene)
        db.flush()
        later_shot = ShotModel(scene_id=later_scene.id, name="Shot_1", sequence=0)
        db.add(later_shot)
        db.commit()

        _add_version(db, shot_a, tier1=True)
        _add_version(db, shot_b, tier2=True)
        _add_version(db, shot_c, tier1=False, tier2=True)
        _add_version(db, later_shot, tier1=True)

        rows = master_listing(db, seeded.project.id)

        assert [(row["scene"]["name"], row["shot"]["name"]) for row in rows] == [
            ("Scene_1", "Shot_2"),
            ("Scene_1", "Shot_10"),
            ("Scene_10", "Shot_1"),
        ]
        assert all(row["version"]["is_active"] for row in rows)

    def test_inactive_and_deleted_shots_are_skipped(self, seeded, test_db_session):
        db = test_db_session
        shot_a, shot_b, _ = seeded.shots
        _add_version(db, shot_a, active=False, tier1=True)
        _add_version(db, shot_b, tier1=True)
        shot_b.is_deleted = True
        shot_b.deleted_at = datetime.utcnow()
        db.commit()

        assert master_listing(db, seeded.project.id) == []


class TestProjectProgress:
    """Test suite for project_progress"""

    @pytest.fixture
    def reviewed(self, seeded, test_db_session):
        _add_version(test_db_session, seeded.shots[0], tier1=True, tier2=True)
        _add_version(test_db_session, seeded.shots[2], tier1=False)
        seeded.shots[1].assigned_pe_id = None
        test_db_session.commit()
        return seeded

    def test_pm_view(self, reviewed, test_db_session, pm_actor):
        result = project_progress(test_db_session, reviewed.project.id, pm_actor)

        assert len(result) == 1
        scene = result[0]
        assert scene["progress"] == 33
        assert [shot["color"] for shot in scene["shots"]] == ["green", "gray", "red"]
        assert [shot["status"] for shot in scene["shots"]] == ["Approved", "Not Started", "Rejected"]
        assert scene["shots"][1]["assignee_email"] == "Unassigned"

    def test_pe_sees_own_shots_with_scene_wide_progress(self, reviewed, test_db_session, pe_actor):
        result = project_progress(test_db_session, reviewed.project.id, pe_actor)

        scene = result[0]
        assert [shot["name"] for shot in scene["shots"]] == ["Shot_1"]
        assert scene["shots"][0]["assignee_email"] == "pe@example.com"
        # Both tiers approved Shot_1, so it counts twice over three shots
        assert scene["progress"] == 67

    def test_scene_without_own_shots_is_omitted(self, reviewed, test_db_session, pe_actor):
        empty_scene = SceneModel(project_id=reviewed.project.id, name="Scene_2")
        test_db_session.add(empty_scene)
        test_db_session.commit()

        result = project_progress(test_db_session, reviewed.project.id, pe_actor)

        assert [scene["scene"]["name"] for scene in result] == ["Scene_1"]
