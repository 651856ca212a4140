"""
MDT Service

Wires the meeting coordinator, plan registry, harmonization engine, approval
workflow and care plan repository into the operations the API exposes.

Every write follows read → transform → compare-and-swap. Passing
``expected_revision`` (the revision the caller last saw) turns a stale
client copy into a ``VersionConflictError`` instead of a silent overwrite.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from mdt_engine.core.careplan import workflow
from mdt_engine.core.careplan.base import (
    HarmonizedCarePlan,
    MDTMeeting,
    MeetingStatus,
    Specialty,
    SpecialtyTreatmentPlan,
    TeamMember,
)
from mdt_engine.core.careplan.harmonization import HarmonizationEngine, calculate_team_workload
from mdt_engine.core.careplan.interactions import InteractionRuleProvider
from mdt_engine.core.careplan.meetings import MeetingCoordinator, generate_meeting_summary
from mdt_engine.core.careplan.registry import PlanRegistry
from mdt_engine.core.careplan.repository import CarePlanRepository
from mdt_engine.utils import get_logger, PlanValidationError, VersionConflictError, WorkflowStateError

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_revision(current: int, expected: Optional[int], entity_id: str) -> None:
    if expected is not None and expected != current:
        raise VersionConflictError(
            f"{entity_id} is at revision {current}, request was based on {expected}",
            expected=expected,
            actual=current,
        )


class MDTService:
    """Unified entry point for meetings, specialty plans and care plans."""

    def __init__(
        self,
        interaction_provider: Optional[InteractionRuleProvider] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.clock = clock
        self.meetings = MeetingCoordinator(clock=clock)
        self.registry = PlanRegistry(clock=clock)
        self.care_plans = CarePlanRepository(clock=clock)
        self.engine = HarmonizationEngine(interaction_provider)

    # ── Meetings ─────────────────────────────────────────────────────────────

    def create_meeting(self, *args, **kwargs) -> MDTMeeting:
        return self.meetings.create_meeting(*args, **kwargs)

    def get_meeting(self, meeting_id: str) -> MDTMeeting:
        return self.meetings.get_meeting(meeting_id)

    def generate_meeting_summary(self, meeting_id: str) -> str:
        return generate_meeting_summary(self.meetings.get_meeting(meeting_id))

    # ── Specialty plans ──────────────────────────────────────────────────────

    def create_specialty_plan(
        self,
        patient_id: str,
        specialty: Specialty,
        submitted_by: TeamMember,
        **content,
    ) -> SpecialtyTreatmentPlan:
        meeting_id = content.get("meeting_id")
        if meeting_id is not None:
            meeting = self.meetings.get_meeting(meeting_id)
            if meeting.patient_id != patient_id:
                raise PlanValidationError(
                    f"Meeting {meeting_id} is for patient {meeting.patient_id}, not {patient_id}",
                    field="meeting_id",
                )
        return self.registry.create_specialty_plan(patient_id, specialty, submitted_by, **content)

    def submit_specialty_plan(self, plan_id: str, actor: TeamMember) -> SpecialtyTreatmentPlan:
        plan = self.registry.submit(plan_id, actor)
        if plan.meeting_id:
            self.meetings.mark_plan_submitted(plan.meeting_id, actor.id)
        return plan

    def approve_specialty_plan(
        self,
        plan_id: str,
        reviewer: TeamMember,
        expected_revision: Optional[int] = None,
    ) -> SpecialtyTreatmentPlan:
        plan = self.registry.get(plan_id)
        _check_revision(plan.revision, expected_revision, plan_id)
        updated = workflow.approve_specialty_plan(plan, reviewer, now=self.clock())
        return self.registry.update(updated, expected_revision=plan.revision)

    def reject_specialty_plan(
        self,
        plan_id: str,
        reviewer: TeamMember,
        reason: str,
        expected_revision: Optional[int] = None,
    ) -> SpecialtyTreatmentPlan:
        plan = self.registry.get(plan_id)
        _check_revision(plan.revision, expected_revision, plan_id)
        updated = workflow.reject_specialty_plan(plan, reviewer, reason)
        return self.registry.update(updated, expected_revision=plan.revision)

    def request_revision(
        self,
        plan_id: str,
        notes: str,
        expected_revision: Optional[int] = None,
        reviewer: Optional[TeamMember] = None,
    ) -> SpecialtyTreatmentPlan:
        plan = self.registry.get(plan_id)
        _check_revision(plan.revision, expected_revision, plan_id)
        updated = workflow.request_revision(plan, notes, reviewer)
        return self.registry.update(updated, expected_revision=plan.revision)

    def resubmit_specialty_plan(self, plan_id: str, actor: TeamMember, **changes) -> SpecialtyTreatmentPlan:
        plan = self.registry.resubmit(plan_id, actor, **changes)
        if plan.meeting_id:
            self.meetings.mark_plan_submitted(plan.meeting_id, actor.id)
        return plan

    def get_pending_approvals(self, consultant_id: str, patient_id: Optional[str] = None) -> List[SpecialtyTreatmentPlan]:
        plans = self.registry.all_plans()
        if patient_id is not None:
            plans = [p for p in plans if p.patient_id == patient_id]
        return workflow.get_pending_approvals(plans, consultant_id)

    # ── Care plans ───────────────────────────────────────────────────────────

    def harmonize(self, patient_id: str, meeting_id: str, primary_consultant: TeamMember) -> HarmonizedCarePlan:
        """
        Merge the patient's current plans for a meeting into a new care plan version.

        The previous version, if any, is superseded. Always recomputed from
        the registry's current plans.
        """
        meeting = self.meetings.get_meeting(meeting_id)
        if meeting.patient_id != patient_id:
            raise PlanValidationError(
                f"Meeting {meeting_id} is for patient {meeting.patient_id}, not {patient_id}",
                field="patient_id",
            )
        if meeting.status == MeetingStatus.CANCELLED:
            raise WorkflowStateError(
                f"Meeting {meeting_id} was cancelled",
                current_state=meeting.status.value,
            )

        plans = self.registry.harmonizable_plans(patient_id, meeting_id)
        version = self.care_plans.next_version(patient_id, meeting_id)
        care_plan = self.engine.harmonize(
            plans, primary_consultant, patient_id, meeting_id,
            version=version, now=self.clock(),
        )
        return self.care_plans.add_version(care_plan)

    def get_care_plan(self, care_plan_id: str) -> HarmonizedCarePlan:
        return self.care_plans.get_by_id(care_plan_id)

    def approve_care_plan(
        self,
        care_plan_id: str,
        approver: TeamMember,
        comments: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> HarmonizedCarePlan:
        plan = self.care_plans.get_by_id(care_plan_id)
        _check_revision(plan.revision, expected_revision, care_plan_id)
        updated = workflow.approve_care_plan(plan, approver, comments, now=self.clock())
        return self.care_plans.update(updated, expected_revision=plan.revision)

    def activate_care_plan(
        self,
        care_plan_id: str,
        actor: TeamMember,
        expected_revision: Optional[int] = None,
    ) -> HarmonizedCarePlan:
        plan = self.care_plans.get_by_id(care_plan_id)
        _check_revision(plan.revision, expected_revision, care_plan_id)
        updated = workflow.activate_care_plan(plan, actor, now=self.clock())
        return self.care_plans.update(updated, expected_revision=plan.revision)

    def resolve_conflict(
        self,
        care_plan_id: str,
        conflict_id: str,
        resolution: str,
        resolved_by: TeamMember,
        expected_revision: Optional[int] = None,
    ) -> HarmonizedCarePlan:
        plan = self.care_plans.get_by_id(care_plan_id)
        _check_revision(plan.revision, expected_revision, care_plan_id)
        updated = workflow.resolve_conflict(plan, conflict_id, resolution, resolved_by, now=self.clock())
        return self.care_plans.update(updated, expected_revision=plan.revision)

    def calculate_team_workload(self, care_plan_id: str) -> Dict[Specialty, int]:
        return calculate_team_workload(self.care_plans.get_by_id(care_plan_id))
