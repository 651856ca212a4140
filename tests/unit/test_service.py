"""
Unit Tests for MDTService

End-to-end flows over the in-memory stores: meeting → plans → harmonize →
approve → activate, plus re-harmonization and stale writes.
"""
import pytest
from datetime import datetime, timezone

from mdt_engine.core.careplan.base import (
    CarePlanState,
    InvitationStatus,
    MedicationAction,
    MedicationRecommendation,
    PlanApprovalState,
    PlanStatus,
    Specialty,
    TreatmentRecommendation,
)
from mdt_engine.services import MDTService
from mdt_engine.utils import (
    InsufficientInputError,
    NotFoundError,
    PlanValidationError,
    VersionConflictError,
    WorkflowStateError,
)


@pytest.fixture
def service(fixed_now) -> MDTService:
    return MDTService(clock=lambda: fixed_now)


@pytest.fixture
def meeting(service, surgeon, nurse):
    return service.create_meeting(
        "PAT-001", "Post-op review", datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc),
        60, [surgeon, nurse], "dr-primary",
    )


@pytest.fixture
def submitted_plans(service, meeting, surgeon, nurse):
    surgery = service.create_specialty_plan(
        "PAT-001", Specialty.SURGERY, surgeon, meeting_id=meeting.id,
        diagnosis=["Cellulitis"],
        recommendations=[TreatmentRecommendation(
            id="rec-s1", category="Wound Care", description="Wet-to-dry dressing", frequency="BD")],
        medications=[MedicationRecommendation(
            id="med-s1", action=MedicationAction.ADD, medication_name="Aspirin")],
    )
    nursing = service.create_specialty_plan(
        "PAT-001", Specialty.NURSING, nurse, meeting_id=meeting.id,
        diagnosis=["Diabetes"],
        recommendations=[TreatmentRecommendation(
            id="rec-n1", category="Wound Care", description="Hydrocolloid dressing", frequency="TDS")],
        medications=[MedicationRecommendation(
            id="med-n1", action=MedicationAction.CONTINUE, medication_name="Warfarin")],
    )
    return [
        service.submit_specialty_plan(surgery.id, surgeon),
        service.submit_specialty_plan(nursing.id, nurse),
    ]


class TestSpecialtyPlans:
    def test_plan_for_another_patients_meeting_rejected(self, service, meeting, surgeon):
        with pytest.raises(PlanValidationError):
            service.create_specialty_plan("PAT-999", Specialty.SURGERY, surgeon, meeting_id=meeting.id)

    def test_plan_for_unknown_meeting_rejected(self, service, surgeon):
        with pytest.raises(NotFoundError):
            service.create_specialty_plan("PAT-001", Specialty.SURGERY, surgeon, meeting_id="missing")

    def test_submission_closes_invitation(self, service, meeting, pharmacist):
        invitation = service.meetings.invite_specialist(meeting.id, pharmacist, "dr-primary")
        plan = service.create_specialty_plan("PAT-001", Specialty.PHARMACY, pharmacist, meeting_id=meeting.id)
        service.submit_specialty_plan(plan.id, pharmacist)
        assert invitation.status == InvitationStatus.PLAN_SUBMITTED

    def test_review_with_stale_revision(self, service, submitted_plans, second_surgeon):
        surgery = submitted_plans[0]
        with pytest.raises(VersionConflictError):
            service.approve_specialty_plan(surgery.id, second_surgeon, expected_revision=surgery.revision - 1)
        approved = service.approve_specialty_plan(surgery.id, second_surgeon, expected_revision=surgery.revision)
        assert approved.approval_status == PlanApprovalState.APPROVED

    def test_pending_approvals(self, service, submitted_plans, surgeon, primary_consultant):
        assert {p.specialty for p in service.get_pending_approvals(primary_consultant.id)} == {
            Specialty.SURGERY, Specialty.NURSING,
        }
        assert [p.specialty for p in service.get_pending_approvals(surgeon.id, "PAT-001")] == [
            Specialty.NURSING,
        ]

    def test_reject_then_resubmit(self, service, submitted_plans, nurse, primary_consultant):
        nursing = submitted_plans[1]
        service.reject_specialty_plan(nursing.id, primary_consultant, "Specify dressing product")
        fresh = service.resubmit_specialty_plan(nursing.id, nurse, special_notes="Aquacel")
        assert fresh.supersedes == nursing.id
        assert service.registry.get(nursing.id).status == PlanStatus.SUPERSEDED

    def test_request_revision(self, service, submitted_plans):
        revised = service.request_revision(submitted_plans[0].id, "Add VTE prophylaxis")
        assert revised.approval_status == PlanApprovalState.NEEDS_REVISION


class TestHarmonizeAndApprove:
    def test_full_flow(self, service, meeting, submitted_plans, surgeon, nurse, primary_consultant):
        care_plan = service.harmonize("PAT-001", meeting.id, primary_consultant)
        assert care_plan.version == 1
        assert care_plan.primary_diagnosis == "Cellulitis"
        assert len(care_plan.unresolved_conflicts) == 1

        warfarin = next(m for m in care_plan.reconciled_medications if m.medication_name == "Warfarin")
        assert len(warfarin.interactions) == 1

        conflict_id = care_plan.unresolved_conflicts[0].id
        care_plan = service.resolve_conflict(care_plan.id, conflict_id, "TDS", nurse,
                                             expected_revision=care_plan.revision)
        care_plan = service.approve_care_plan(care_plan.id, surgeon, expected_revision=care_plan.revision)
        care_plan = service.approve_care_plan(care_plan.id, nurse)
        care_plan = service.approve_care_plan(care_plan.id, primary_consultant, "Agreed at MDT")
        assert care_plan.status == CarePlanState.APPROVED

        care_plan = service.activate_care_plan(care_plan.id, primary_consultant)
        assert care_plan.status == CarePlanState.ACTIVE
        assert service.get_care_plan(care_plan.id) is care_plan
        assert service.calculate_team_workload(care_plan.id) == {Specialty.SURGERY: 1}

    def test_needs_two_plans(self, service, meeting, surgeon, primary_consultant):
        plan = service.create_specialty_plan("PAT-001", Specialty.SURGERY, surgeon, meeting_id=meeting.id)
        service.submit_specialty_plan(plan.id, surgeon)
        with pytest.raises(InsufficientInputError):
            service.harmonize("PAT-001", meeting.id, primary_consultant)

    def test_draft_plans_are_ignored(self, service, meeting, surgeon, nurse, primary_consultant):
        service.create_specialty_plan("PAT-001", Specialty.SURGERY, surgeon, meeting_id=meeting.id)
        service.create_specialty_plan("PAT-001", Specialty.NURSING, nurse, meeting_id=meeting.id)
        with pytest.raises(InsufficientInputError):
            service.harmonize("PAT-001", meeting.id, primary_consultant)

    def test_cancelled_meeting_cannot_be_harmonized(self, service, meeting, submitted_plans,
                                                    primary_consultant):
        service.meetings.cancel_meeting(meeting.id, "Patient discharged")
        with pytest.raises(WorkflowStateError):
            service.harmonize("PAT-001", meeting.id, primary_consultant)

    def test_reharmonize_supersedes(self, service, meeting, submitted_plans, surgeon, primary_consultant):
        first = service.harmonize("PAT-001", meeting.id, primary_consultant)
        second = service.harmonize("PAT-001", meeting.id, primary_consultant)
        assert second.version == 2
        assert service.get_care_plan(first.id).status == CarePlanState.SUPERSEDED
        with pytest.raises(WorkflowStateError):
            service.approve_care_plan(first.id, surgeon)

    def test_stale_care_plan_write(self, service, meeting, submitted_plans, surgeon, nurse,
                                   primary_consultant):
        care_plan = service.harmonize("PAT-001", meeting.id, primary_consultant)
        service.approve_care_plan(care_plan.id, surgeon, expected_revision=care_plan.revision)
        with pytest.raises(VersionConflictError):
            service.approve_care_plan(care_plan.id, nurse, expected_revision=care_plan.revision)

    def test_meeting_summary(self, service, meeting):
        assert service.generate_meeting_summary(meeting.id).startswith("MDT MEETING SUMMARY")
