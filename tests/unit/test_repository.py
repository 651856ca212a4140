"""
Unit Tests for the Care Plan Repository

Tests for version numbering, superseding and revision-checked writes.
"""
import pytest

from mdt_engine.core.careplan import harmonize_treatment_plans
from mdt_engine.core.careplan.base import CarePlanState
from mdt_engine.core.careplan.repository import CarePlanRepository
from mdt_engine.core.careplan.workflow import approve_care_plan
from mdt_engine.utils import NotFoundError, VersionConflictError


@pytest.fixture
def repository(fixed_now) -> CarePlanRepository:
    return CarePlanRepository(clock=lambda: fixed_now)


@pytest.fixture
def harmonize(wound_care_plans, primary_consultant, fixed_now):
    def _harmonize(version: int = 1):
        return harmonize_treatment_plans(
            wound_care_plans, primary_consultant, "PAT-001", "MTG-001",
            version=version, now=fixed_now,
        )
    return _harmonize


class TestVersions:
    def test_first_version(self, repository, harmonize):
        assert repository.next_version("PAT-001", "MTG-001") == 1
        stored = repository.add_version(harmonize())
        assert repository.get("PAT-001", "MTG-001") is stored
        assert repository.get_by_id(stored.id) is stored
        assert repository.next_version("PAT-001", "MTG-001") == 2

    def test_new_version_supersedes_previous(self, repository, harmonize):
        v1 = repository.add_version(harmonize(1))
        v2 = repository.add_version(harmonize(2))

        history = repository.history("PAT-001", "MTG-001")
        assert [p.version for p in history] == [1, 2]
        assert history[0].status == CarePlanState.SUPERSEDED
        assert repository.get_by_id(v1.id).status == CarePlanState.SUPERSEDED
        assert repository.get("PAT-001", "MTG-001") is v2
        assert repository.get("PAT-001", "MTG-001", version=1).id == v1.id

    def test_skipped_or_duplicate_version_rejected(self, repository, harmonize):
        repository.add_version(harmonize(1))
        with pytest.raises(VersionConflictError):
            repository.add_version(harmonize(1))
        with pytest.raises(VersionConflictError):
            repository.add_version(harmonize(3))

    def test_lookup_misses(self, repository):
        with pytest.raises(NotFoundError):
            repository.get("PAT-001", "MTG-001")
        with pytest.raises(NotFoundError):
            repository.get_by_id("missing")


class TestRevisionCheckedWrites:
    def test_update_with_current_revision(self, repository, harmonize, surgeon):
        stored = repository.add_version(harmonize())
        approved = approve_care_plan(stored, surgeon)
        repository.update(approved, expected_revision=stored.revision)
        assert repository.get_by_id(stored.id).status == CarePlanState.PENDING_APPROVAL

    def test_concurrent_approvals_one_wins(self, repository, harmonize, surgeon, nurse):
        stored = repository.add_version(harmonize())
        by_surgeon = approve_care_plan(stored, surgeon)
        by_nurse = approve_care_plan(stored, nurse)

        repository.update(by_surgeon, expected_revision=stored.revision)
        with pytest.raises(VersionConflictError):
            repository.update(by_nurse, expected_revision=stored.revision)
        assert [a.approved_by for a in repository.get_by_id(stored.id).approvals] == [surgeon.id]

    def test_superseded_version_is_read_only(self, repository, harmonize, surgeon):
        v1 = repository.add_version(harmonize(1))
        repository.add_version(harmonize(2))
        with pytest.raises(VersionConflictError):
            repository.update(approve_care_plan(v1, surgeon), expected_revision=v1.revision + 1)
