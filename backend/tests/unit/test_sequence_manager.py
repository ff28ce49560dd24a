"""
Unit Tests for SequenceManager
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from shotdesk.models.shot import ShotModel
from shotdesk.models.version import ReviewModel, VersionModel
from shotdesk.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    SequenceWriteError,
    ValidationFailedError,
)
from shotdesk.services.sequence_manager import SequenceManager, days_remaining
from shotdesk.services.storage import ShotDB


@pytest.fixture
def manager(test_db_session) -> SequenceManager:
    return SequenceManager(test_db_session, retention_days=30)


def _order(db, scene_id):
    return [(shot.id, shot.sequence, shot.name) for shot in ShotDB.list_visible(db, scene_id)]


def assert_dense(db, scene_id):
    shots = ShotDB.list_visible(db, scene_id)
    assert [shot.sequence for shot in shots] == list(range(len(shots)))
    assert [shot.name for shot in shots] == [f"Shot_{i + 1}" for i in range(len(shots))]


class TestStructuralEdits:
    """Append, insert and reorder"""

    def test_append_goes_to_the_end(self, manager, seeded, pm_actor, test_db_session):
        shot = manager.append(pm_actor, seeded.scene.id, folder_id="drive-new")

        assert shot.sequence == 3
        assert shot.name == "Shot_4"
        assert shot.folder_id == "drive-new"
        assert_dense(test_db_session, seeded.scene.id)

    def test_insert_shifts_following_shots(self, manager, seeded, cd_actor, test_db_session):
        first, second, third = (shot.id for shot in seeded.shots)

        new = manager.insert_before(cd_actor, seeded.scene.id, 1)

        assert [entry[0] for entry in _order(test_db_session, seeded.scene.id)] == [first, new.id, second, third]
        assert new.name == "Shot_2"
        assert ShotDB.get_shot(test_db_session, third).name == "Shot_4"
        assert_dense(test_db_session, seeded.scene.id)

    def test_insert_at_end_equals_append(self, manager, seeded, pm_actor):
        shot = manager.insert_before(pm_actor, seeded.scene.id, 3)

        assert shot.sequence == 3

    @pytest.mark.parametrize("position", [-1, 4])
    def test_insert_out_of_range(self, manager, seeded, pm_actor, position):
        with pytest.raises(ValidationFailedError):
            manager.insert_before(pm_actor, seeded.scene.id, position)

    def test_reorder_renames_from_new_sequence(self, manager, seeded, pm_actor, test_db_session):
        first, second, third = (shot.id for shot in seeded.shots)

        shots = manager.reorder(pm_actor, seeded.scene.id, [third, first, second])

        assert [shot.id for shot in shots] == [third, first, second]
        assert ShotDB.get_shot(test_db_session, third).name == "Shot_1"
        assert_dense(test_db_session, seeded.scene.id)

    def test_reorder_must_be_a_permutation(self, manager, seeded, pm_actor, test_db_session):
        first, second, third = (shot.id for shot in seeded.shots)
        before = _order(test_db_session, seeded.scene.id)

        with pytest.raises(ValidationFailedError):
            manager.reorder(pm_actor, seeded.scene.id, [first, second])
        with pytest.raises(ValidationFailedError):
            manager.reorder(pm_actor, seeded.scene.id, [first, first, third])
        with pytest.raises(ValidationFailedError):
            manager.reorder(pm_actor, seeded.scene.id, [first, second, "unknown"])

        assert _order(test_db_session, seeded.scene.id) == before

    def test_pe_cannot_edit_structure(self, manager, seeded, pe_actor):
        with pytest.raises(PermissionDeniedError):
            manager.append(pe_actor, seeded.scene.id)
        with pytest.raises(PermissionDeniedError):
            manager.soft_delete(pe_actor, seeded.shots[0].id)

    def test_unknown_scene(self, manager, seeded, pm_actor):
        with pytest.raises(NotFoundError):
            manager.append(pm_actor, "missing-scene")

    def test_unknown_field(self, manager, seeded, pm_actor):
        with pytest.raises(ValidationFailedError):
            manager.append(pm_actor, seeded.scene.id, sequence=7)

    def test_renumber_repairs_names(self, manager, seeded, test_db_session):
        seeded.shots[1].name = "Hero shot"
        test_db_session.commit()

        manager.renumber_names(seeded.scene.id)

        assert_dense(test_db_session, seeded.scene.id)

    def test_renumber_closes_sequence_gaps(self, manager, seeded, test_db_session):
        first, second, third = seeded.shots
        second.sequence, third.sequence = 4, 9
        third.name = "Shot_10"
        test_db_session.commit()

        shots = manager.renumber_names(seeded.scene.id)

        assert [(s.id, s.sequence, s.name) for s in shots] == [
            (first.id, 0, "Shot_1"),
            (second.id, 1, "Shot_2"),
            (third.id, 2, "Shot_3"),
        ]

    def test_write_failure_leaves_order_untouched(self, manager, seeded, pm_actor, test_db_session, monkeypatch):
        before = _order(test_db_session, seeded.scene.id)

        def broken_shift(db, scene_id, from_position, delta=1):
            raise OperationalError("UPDATE shots", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ShotDB, "shift_sequences", broken_shift)

        with pytest.raises(SequenceWriteError):
            manager.insert_before(pm_actor, seeded.scene.id, 0)

        assert _order(test_db_session, seeded.scene.id) == before
        assert test_db_session.query(ShotModel).count() == 3


class TestTrash:
    """Soft delete, restore and purge"""

    def test_soft_delete_compacts_remaining(self, manager, seeded, pm_actor, test_db_session):
        first, second, third = seeded.shots

        deleted = manager.soft_delete(pm_actor, second.id)

        assert deleted.is_deleted
        assert deleted.deleted_at is not None
        assert deleted.sequence == 1
        assert [entry[0] for entry in _order(test_db_session, seeded.scene.id)] == [first.id, third.id]
        assert ShotDB.get_shot(test_db_session, third.id).name == "Shot_2"
        assert_dense(test_db_session, seeded.scene.id)

    def test_delete_twice_is_refused(self, manager, seeded, pm_actor):
        manager.soft_delete(pm_actor, seeded.shots[0].id)

        with pytest.raises(ValidationFailedError):
            manager.soft_delete(pm_actor, seeded.shots[0].id)

    def test_restore_reenters_at_the_end(self, manager, seeded, pm_actor, test_db_session):
        first = seeded.shots[0]
        manager.soft_delete(pm_actor, first.id)

        restored = manager.restore(pm_actor, first.id)

        assert not restored.is_deleted
        assert restored.deleted_at is None
        assert restored.sequence == 2
        assert restored.name == "Shot_3"
        assert_dense(test_db_session, seeded.scene.id)

    def test_restore_requires_deleted_shot(self, manager, seeded, pm_actor):
        with pytest.raises(ValidationFailedError):
            manager.restore(pm_actor, seeded.shots[0].id)

    def test_restore_after_retention_is_refused(self, manager, seeded, pm_actor):
        deleted = manager.soft_delete(pm_actor, seeded.shots[0].id)

        with pytest.raises(ValidationFailedError):
            manager.restore(pm_actor, deleted.id, now=deleted.deleted_at + timedelta(days=30, hours=1))

    def test_density_after_mixed_operations(self, manager, seeded, pm_actor, cd_actor, test_db_session):
        scene_id = seeded.scene.id
        first, second, third = (shot.id for shot in seeded.shots)

        manager.append(pm_actor, scene_id)
        manager.soft_delete(cd_actor, second)
        inserted = manager.insert_before(pm_actor, scene_id, 0)
        manager.soft_delete(pm_actor, first)
        manager.restore(cd_actor, second)
        visible = [entry[0] for entry in _order(test_db_session, scene_id)]
        manager.reorder(pm_actor, scene_id, list(reversed(visible)))

        assert_dense(test_db_session, scene_id)
        assert len(ShotDB.list_visible(test_db_session, scene_id)) == 4
        assert inserted.id in visible
        assert [shot.id for shot in ShotDB.list_deleted(test_db_session, scene_id)] == [first]

    def test_purge_removes_expired_shots_with_versions(self, manager, seeded, pm_actor, test_db_session):
        db = test_db_session
        shot = seeded.shots[0]
        version = VersionModel(shot_id=shot.id, version_number=1, artifact_link="https://drive.example.com/v1")
        db.add(version)
        db.flush()
        db.add(ReviewModel(version_id=version.id))
        db.commit()
        deleted = manager.soft_delete(pm_actor, shot.id)
        manager.soft_delete(pm_actor, seeded.shots[1].id)

        assert manager.purge_expired(seeded.scene.id, now=deleted.deleted_at + timedelta(days=1)) == 0

        purged = manager.purge_expired(seeded.scene.id, now=deleted.deleted_at + timedelta(days=31))

        assert purged == 2
        assert db.query(ShotModel).filter(ShotModel.scene_id == seeded.scene.id).count() == 1
        assert db.query(VersionModel).count() == 0
        assert db.query(ReviewModel).count() == 0


class TestDaysRemaining:
    """Test suite for days_remaining"""

    def test_fresh_deletion(self):
        now = datetime(2026, 3, 1, 12, 0)

        assert days_remaining(now, now=now, retention_days=30) == 30

    def test_partial_days_round_down_elapsed(self):
        deleted_at = datetime(2026, 3, 1, 12, 0)

        assert days_remaining(deleted_at, now=deleted_at + timedelta(days=29, hours=23), retention_days=30) == 1

    def test_never_negative(self):
        deleted_at = datetime(2026, 3, 1, 12, 0)

        assert days_remaining(deleted_at, now=deleted_at + timedelta(days=45), retention_days=30) == 0

    def test_not_deleted(self):
        assert days_remaining(None, retention_days=30) == 30

    def test_manager_uses_its_retention(self, test_db_session):
        manager = SequenceManager(test_db_session, retention_days=7)
        deleted_at = datetime(2026, 3, 1, 12, 0)
        shot = ShotModel(scene_id="scene", name="Shot_1", deleted_at=deleted_at, is_deleted=True)

        assert manager.days_remaining(shot, now=deleted_at + timedelta(days=2)) == 5
