"""
Unit Tests for ReviewStateMachine
"""

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from shotdesk.models.version import ReviewModel, Tier, VersionModel
from shotdesk.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    ReviewWriteError,
    ValidationFailedError,
)
from shotdesk.services.review_state import ReviewStateMachine
from shotdesk.services.storage import NotificationDB, VersionDB
from tests.fixtures.fakes import FakeSyncClient
from tests.fixtures.sample_data import make_job


@pytest.fixture
def machine(test_db_session, sync_client, notifier) -> ReviewStateMachine:
    return ReviewStateMachine(test_db_session, sync_client, notifier)


def _review_of(db, version: VersionModel) -> ReviewModel:
    return VersionDB.get_review_for_version(db, version.id)


def _active_ids(db, shot_id: str):
    return [v.id for v in VersionDB.list_for_shot(db, shot_id) if v.is_active]


def _messages(db, user_id: str):
    return [n.message for n in NotificationDB.list_for_user(db, user_id)]


class TestCreateVersion:
    """Versions and their empty reviews"""

    def test_assignee_creates_inactive_version_with_review(self, machine, seeded, pe_actor, test_db_session):
        shot = seeded.shots[0]

        version = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")

        assert version.version_number == 1
        assert version.is_active is False
        review = _review_of(test_db_session, version)
        assert review is not None
        assert review.tier1_vote is None and review.tier2_vote is None and review.master_vote is None

    def test_version_numbers_increase(self, machine, seeded, pm_actor):
        shot = seeded.shots[0]

        first = machine.create_version(pm_actor, shot.id, "https://drive.example.com/v1")
        second = machine.create_version(pm_actor, shot.id, "https://drive.example.com/v2")

        assert (first.version_number, second.version_number) == (1, 2)

    def test_new_version_notifies_reviewers_except_actor(self, machine, seeded, pe_actor, test_db_session):
        machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        expected = "pe@example.com has added a version on Harbour/Scene_1/Shot_1"
        for key in ("pm", "cd", "cd2"):
            assert _messages(test_db_session, seeded.users[key].id) == [expected]
        assert _messages(test_db_session, seeded.users["pe"].id) == []

    def test_cd_upload_skips_self(self, machine, seeded, cd_actor, test_db_session):
        machine.create_version(cd_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        assert _messages(test_db_session, seeded.users["cd"].id) == []
        assert len(_messages(test_db_session, seeded.users["cd2"].id)) == 1

    def test_non_assignee_pe_cannot_create(self, machine, seeded, pe_actor):
        # Shot_3 belongs to other_pe
        with pytest.raises(PermissionDeniedError):
            machine.create_version(pe_actor, seeded.shots[2].id, "https://drive.example.com/v1")

    def test_unknown_shot(self, machine, seeded, pm_actor):
        with pytest.raises(NotFoundError):
            machine.create_version(pm_actor, "missing-shot", "https://drive.example.com/v1")

    def test_blank_link_rejected(self, machine, seeded, pm_actor):
        with pytest.raises(ValidationFailedError):
            machine.create_version(pm_actor, seeded.shots[0].id, "   ")

    def test_promote_completed_generation(self, machine, seeded, pe_actor):
        shot = seeded.shots[0]
        job = make_job("gen-7", shot_id=shot.id)

        version = machine.promote_generation(pe_actor, shot.id, job)

        assert version.artifact_link == "https://cdn.example.com/gen-7.png"
        assert version.public_link == version.artifact_link

    def test_promote_pending_generation_rejected(self, machine, seeded, pe_actor):
        shot = seeded.shots[0]
        job = make_job("gen-8", status="pending", shot_id=shot.id)

        with pytest.raises(ValidationFailedError):
            machine.promote_generation(pe_actor, shot.id, job)


class TestVotes:
    """Tier votes and the activation rule"""

    @pytest.mark.asyncio
    async def test_positive_vote_activates_and_syncs(
        self, machine, seeded, pe_actor, cd_actor, sync_client, test_db_session
    ):
        shot = seeded.shots[0]
        version = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        review = _review_of(test_db_session, version)

        outcome = await machine.cast_vote(cd_actor, review.id, Tier.TIER1, True)

        assert outcome.activated
        assert outcome.is_active
        assert outcome.synced
        assert outcome.warning is None
        assert outcome.review["tier1_vote"] is True
        assert sync_client.calls == [
            {"version_id": version.id, "destination": "drive-shot-1", "shot_name": "Shot_1"}
        ]

    @pytest.mark.asyncio
    async def test_exactly_one_active_version(self, machine, seeded, pe_actor, cd_actor, pm_actor, test_db_session):
        shot = seeded.shots[0]
        v1 = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        v2 = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v2")

        await machine.cast_vote(cd_actor, _review_of(test_db_session, v1).id, Tier.TIER1, True)
        assert _active_ids(test_db_session, shot.id) == [v1.id]

        await machine.cast_vote(pm_actor, _review_of(test_db_session, v2).id, Tier.TIER2, True)
        assert _active_ids(test_db_session, shot.id) == [v2.id]

    @pytest.mark.asyncio
    async def test_repeat_positive_vote_is_idempotent_but_syncs_again(
        self, machine, seeded, pe_actor, cd_actor, pm_actor, sync_client, test_db_session
    ):
        shot = seeded.shots[0]
        version = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id

        await machine.cast_vote(cd_actor, review_id, Tier.TIER1, True)
        outcome = await machine.cast_vote(pm_actor, review_id, Tier.TIER2, True)

        assert not outcome.activated
        assert _active_ids(test_db_session, shot.id) == [version.id]
        assert len(sync_client.calls) == 2

    @pytest.mark.asyncio
    async def test_negative_vote_never_deactivates(
        self, machine, seeded, pe_actor, cd_actor, pm_actor, sync_client, test_db_session
    ):
        shot = seeded.shots[0]
        version = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id
        await machine.cast_vote(cd_actor, review_id, Tier.TIER1, True)

        outcome = await machine.cast_vote(pm_actor, review_id, Tier.TIER2, False)

        assert outcome.is_active
        assert outcome.review["tier2_vote"] is False
        assert len(sync_client.calls) == 1

    @pytest.mark.asyncio
    async def test_vote_overwrites_previous(self, machine, seeded, pe_actor, cd_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id

        await machine.cast_vote(cd_actor, review_id, Tier.TIER1, False)
        outcome = await machine.cast_vote(cd_actor, review_id, Tier.TIER1, True)

        assert outcome.review["tier1_vote"] is True

    @pytest.mark.asyncio
    async def test_sync_failure_keeps_vote_with_warning(self, seeded, pe_actor, cd_actor, notifier, test_db_session):
        machine = ReviewStateMachine(test_db_session, FakeSyncClient(fail=True), notifier)
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        outcome = await machine.cast_vote(cd_actor, _review_of(test_db_session, version).id, Tier.TIER1, True)

        assert outcome.is_active
        assert not outcome.synced
        assert "publishing the active version failed" in outcome.warning

    @pytest.mark.asyncio
    async def test_vote_notifies_assignee(self, machine, seeded, pe_actor, cd_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        await machine.cast_vote(cd_actor, _review_of(test_db_session, version).id, Tier.TIER1, True)

        assert _messages(test_db_session, seeded.users["pe"].id) == [
            "cd@example.com has added a feedback on your Harbour/Scene_1/Shot_1"
        ]

    @pytest.mark.asyncio
    async def test_wrong_role_for_tier(self, machine, seeded, pe_actor, pm_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id

        with pytest.raises(PermissionDeniedError):
            await machine.cast_vote(pm_actor, review_id, Tier.TIER1, True)
        with pytest.raises(PermissionDeniedError):
            await machine.cast_vote(pe_actor, review_id, Tier.TIER2, True)

    @pytest.mark.asyncio
    async def test_master_tier_not_votable_directly(self, machine, seeded, pe_actor, cd_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        with pytest.raises(ValidationFailedError):
            await machine.cast_vote(cd_actor, _review_of(test_db_session, version).id, Tier.MASTER, True)

    @pytest.mark.asyncio
    async def test_unknown_review(self, machine, seeded, cd_actor):
        with pytest.raises(NotFoundError):
            await machine.cast_vote(cd_actor, "missing-review", Tier.TIER1, True)

    @pytest.mark.asyncio
    async def test_write_failure_applies_nothing(
        self, machine, seeded, pe_actor, cd_actor, sync_client, test_db_session, monkeypatch
    ):
        shot = seeded.shots[0]
        version = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id

        def broken_set_active(db, version):
            raise OperationalError("UPDATE versions", {}, Exception("database is locked"))

        monkeypatch.setattr(VersionDB, "set_active", broken_set_active)

        with pytest.raises(ReviewWriteError):
            await machine.cast_vote(cd_actor, review_id, Tier.TIER1, True)

        assert VersionDB.get_review(test_db_session, review_id).tier1_vote is None
        assert _active_ids(test_db_session, shot.id) == []
        assert sync_client.calls == []


class TestComments:
    """Feedback without a vote"""

    def test_comment_leaves_vote_untouched(self, machine, seeded, pe_actor, pm_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, version).id

        review = machine.save_comment(
            pm_actor, review_id, Tier.TIER2, "Warmer light please", "https://cdn.example.com/markup.png"
        )

        assert review.tier2_comment == "Warmer light please"
        assert review.tier2_image_url == "https://cdn.example.com/markup.png"
        assert review.tier2_vote is None
        assert _messages(test_db_session, seeded.users["pe"].id) == [
            "pm@example.com has added a review on your Harbour/Scene_1/Shot_1"
        ]

    def test_comment_wrong_role(self, machine, seeded, pe_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        with pytest.raises(PermissionDeniedError):
            machine.save_comment(pe_actor, _review_of(test_db_session, version).id, Tier.TIER1, "mine")


class TestMasterTier:
    """Escalation approve and reject"""

    @pytest_asyncio.fixture
    async def approved(self, machine, seeded, pe_actor, cd_actor, test_db_session):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")
        await machine.cast_vote(cd_actor, _review_of(test_db_session, version).id, Tier.TIER1, True)
        return version

    @pytest.mark.asyncio
    async def test_master_requires_activation_rule(self, machine, seeded, pe_actor, cd_actor):
        version = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v1")

        with pytest.raises(ValidationFailedError):
            await machine.master_approve(cd_actor, version.id)
        with pytest.raises(ValidationFailedError):
            machine.master_reject(cd_actor, version.id, "Not yet")

    @pytest.mark.asyncio
    async def test_master_approve_syncs(self, machine, approved, cd_actor, sync_client):
        outcome = await machine.master_approve(cd_actor, approved.id)

        assert outcome.review["master_vote"] is True
        assert outcome.synced
        assert len(sync_client.calls) == 2

    @pytest.mark.asyncio
    async def test_reject_with_blank_comment_is_refused(self, machine, approved, cd_actor, test_db_session):
        with pytest.raises(ValidationFailedError) as exc_info:
            machine.master_reject(cd_actor, approved.id, "   ")

        assert exc_info.value.suggested_modifications
        assert _review_of(test_db_session, approved).master_vote is None

    @pytest.mark.asyncio
    async def test_reject_notifies_assignee_and_keeps_active(
        self, machine, approved, seeded, cd_actor, test_db_session
    ):
        review = machine.master_reject(cd_actor, approved.id, "  Sky is too green ")

        assert review.master_vote is False
        assert review.master_comment == "Sky is too green"
        assert _active_ids(test_db_session, approved.shot_id) == [approved.id]
        assert (
            "cd@example.com has rejected your Harbour/Scene_1/Shot_1: Sky is too green"
            in _messages(test_db_session, seeded.users["pe"].id)
        )

    @pytest.mark.asyncio
    async def test_pm_cannot_use_master_tier(self, machine, approved, pm_actor):
        with pytest.raises(PermissionDeniedError):
            await machine.master_approve(pm_actor, approved.id)

    @pytest.mark.asyncio
    async def test_unknown_version(self, machine, seeded, cd_actor):
        with pytest.raises(NotFoundError):
            await machine.master_approve(cd_actor, "missing-version")

    @pytest.mark.asyncio
    async def test_superseded_version_cannot_be_escalated(
        self, machine, approved, seeded, pe_actor, cd_actor, sync_client, test_db_session
    ):
        v2 = machine.create_version(pe_actor, seeded.shots[0].id, "https://drive.example.com/v2")
        await machine.cast_vote(cd_actor, _review_of(test_db_session, v2).id, Tier.TIER1, True)
        calls = len(sync_client.calls)

        with pytest.raises(ValidationFailedError):
            await machine.master_approve(cd_actor, approved.id)
        with pytest.raises(ValidationFailedError):
            machine.master_reject(cd_actor, approved.id, "Old take")

        assert len(sync_client.calls) == calls
        assert sync_client.calls[-1]["version_id"] == v2.id
        assert _active_ids(test_db_session, approved.shot_id) == [v2.id]
        assert _review_of(test_db_session, approved).master_vote is None


class TestReviewWalkthrough:
    """Upload, both tiers and the escalation tier on one shot"""

    @pytest.mark.asyncio
    async def test_upload_votes_and_master_reject(
        self, machine, seeded, pe_actor, pm_actor, cd_actor, sync_client, test_db_session
    ):
        shot = seeded.shots[0]
        pe_id = seeded.users["pe"].id

        v1 = machine.create_version(pe_actor, shot.id, "https://drive.example.com/v1")
        review_id = _review_of(test_db_session, v1).id
        assert v1.version_number == 1
        assert v1.is_active is False

        outcome = await machine.cast_vote(cd_actor, review_id, Tier.TIER1, True)
        assert outcome.is_active
        assert outcome.review["tier1_vote"] is True
        assert len(sync_client.calls) == 1

        outcome = await machine.cast_vote(pm_actor, review_id, Tier.TIER2, False)
        assert outcome.is_active
        assert outcome.review["tier2_vote"] is False
        assert len(sync_client.calls) == 1
        messages = _messages(test_db_session, pe_id)
        assert "pm@example.com has added a feedback on your Harbour/Scene_1/Shot_1" in messages
        assert not any("has rejected your" in message for message in messages)

        review = machine.master_reject(cd_actor, v1.id, "needs relight")
        assert review.master_vote is False
        assert _active_ids(test_db_session, shot.id) == [v1.id]
        assert (
            "cd@example.com has rejected your Harbour/Scene_1/Shot_1: needs relight"
            in _messages(test_db_session, pe_id)
        )
