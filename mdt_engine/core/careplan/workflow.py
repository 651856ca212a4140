"""
Approval Workflow

Two independent state machines:

  Specialty plan (``PlanApprovalState``)
      pending ──approve──▶ approved
      pending ──reject───▶ rejected         (reason required)
      pending ──revise───▶ needs_revision   (notes required)

  Harmonized care plan (``CarePlanState``)
      draft | pending_approval ──contributor approval──▶ pending_approval
      draft | pending_approval ──primary approval──────▶ approved
      approved ──activate──▶ active
      any live state ──new version──▶ superseded

Every function takes a snapshot and returns a new one with ``revision``
bumped; the input is never mutated, so a rejected attempt leaves the caller's
copy exactly as it was. Persisting the result is the repository's job.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from mdt_engine.utils import (
    get_logger,
    AuthorizationError,
    NotFoundError,
    PlanValidationError,
    WorkflowStateError,
)
from .base import (
    ApprovalRecord,
    CarePlanState,
    FinalApproval,
    HarmonizedCarePlan,
    PlanApprovalState,
    PlanStatus,
    SpecialtyTreatmentPlan,
    TeamMember,
)

logger = get_logger(__name__)

# ── Transition tables ────────────────────────────────────────────────────────

PLAN_APPROVAL_TRANSITIONS: Dict[PlanApprovalState, FrozenSet[PlanApprovalState]] = {
    PlanApprovalState.PENDING: frozenset({
        PlanApprovalState.APPROVED,
        PlanApprovalState.REJECTED,
        PlanApprovalState.NEEDS_REVISION,
    }),
    # Terminal: a revised plan is resubmitted as a new plan (see registry)
    PlanApprovalState.APPROVED:       frozenset(),
    PlanApprovalState.REJECTED:       frozenset(),
    PlanApprovalState.NEEDS_REVISION: frozenset(),
}

CARE_PLAN_TRANSITIONS: Dict[CarePlanState, FrozenSet[CarePlanState]] = {
    CarePlanState.DRAFT: frozenset({
        CarePlanState.PENDING_APPROVAL,
        CarePlanState.APPROVED,
        CarePlanState.SUPERSEDED,
    }),
    CarePlanState.PENDING_APPROVAL: frozenset({
        CarePlanState.PENDING_APPROVAL,
        CarePlanState.APPROVED,
        CarePlanState.SUPERSEDED,
    }),
    CarePlanState.APPROVED:   frozenset({CarePlanState.ACTIVE, CarePlanState.SUPERSEDED}),
    CarePlanState.ACTIVE:     frozenset({CarePlanState.SUPERSEDED}),
    CarePlanState.SUPERSEDED: frozenset(),
}

assert set(PLAN_APPROVAL_TRANSITIONS) == set(PlanApprovalState), "unhandled PlanApprovalState"
assert set(CARE_PLAN_TRANSITIONS) == set(CarePlanState), "unhandled CarePlanState"

# States in which the harmonized content may still change
_OPEN_CARE_PLAN_STATES = frozenset({CarePlanState.DRAFT, CarePlanState.PENDING_APPROVAL})


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _require_plan_transition(plan: SpecialtyTreatmentPlan, target: PlanApprovalState) -> None:
    if plan.status != PlanStatus.SUBMITTED:
        raise WorkflowStateError(
            f"Plan {plan.id} is {plan.status.value}; only submitted plans can be reviewed",
            current_state=plan.status.value,
            details={"plan_id": plan.id},
        )
    if target not in PLAN_APPROVAL_TRANSITIONS[plan.approval_status]:
        raise WorkflowStateError(
            f"Cannot move plan {plan.id} from {plan.approval_status.value} to {target.value}",
            current_state=plan.approval_status.value,
            details={"plan_id": plan.id, "target_state": target.value},
        )


def _require_care_plan_transition(plan: HarmonizedCarePlan, target: CarePlanState) -> None:
    if target not in CARE_PLAN_TRANSITIONS[plan.status]:
        raise WorkflowStateError(
            f"Cannot move care plan {plan.id} v{plan.version} from {plan.status.value} to {target.value}",
            current_state=plan.status.value,
            details={"care_plan_id": plan.id, "target_state": target.value},
        )


# ── Authorization ────────────────────────────────────────────────────────────

def is_designated_primary(plan: HarmonizedCarePlan, member: TeamMember) -> bool:
    """True only for the plan's own primary consultant, flag included."""
    return member.is_primary_consultant and member.id == plan.primary_consultant.id


def authorize_care_plan_actor(plan: HarmonizedCarePlan, member: TeamMember) -> bool:
    """
    Check that ``member`` may act on ``plan``.

    Returns whether the member is the designated primary consultant; raises
    ``AuthorizationError`` if they are neither that nor a contributor.
    """
    if is_designated_primary(plan, member):
        return True
    if member.specialty in plan.contributing_specialties:
        return False
    raise AuthorizationError(
        f"{member.name} ({member.specialty.value}) is neither the primary consultant "
        f"nor a member of a contributing specialty",
        actor_id=member.id,
        details={"care_plan_id": plan.id},
    )


def _authorize_plan_reviewer(plan: SpecialtyTreatmentPlan, reviewer: TeamMember) -> None:
    if reviewer.id == plan.submitted_by.id:
        raise AuthorizationError(
            f"{reviewer.name} cannot review their own plan",
            actor_id=reviewer.id,
            details={"plan_id": plan.id},
        )
    if not (reviewer.is_primary_consultant or reviewer.specialty == plan.specialty):
        raise AuthorizationError(
            f"{reviewer.name} ({reviewer.specialty.value}) may not review a "
            f"{plan.specialty.value} plan",
            actor_id=reviewer.id,
            details={"plan_id": plan.id},
        )


# ── Specialty plan transitions ───────────────────────────────────────────────

def approve_specialty_plan(
    plan: SpecialtyTreatmentPlan,
    reviewer: TeamMember,
    now: Optional[datetime] = None,
) -> SpecialtyTreatmentPlan:
    """pending → approved; records the reviewer and approval date."""
    _authorize_plan_reviewer(plan, reviewer)
    _require_plan_transition(plan, PlanApprovalState.APPROVED)
    logger.info(f"Specialty plan {plan.id} ({plan.specialty.value}) approved by {reviewer.id}")
    return replace(
        plan,
        status=PlanStatus.APPROVED,
        approval_status=PlanApprovalState.APPROVED,
        approved_by=reviewer.id,
        approval_date=_now(now),
        revision=plan.revision + 1,
    )


def reject_specialty_plan(
    plan: SpecialtyTreatmentPlan,
    reviewer: TeamMember,
    reason: str,
) -> SpecialtyTreatmentPlan:
    """pending → rejected; a non-empty reason is required."""
    if not reason or not reason.strip():
        raise PlanValidationError("A rejection reason is required", field="reason")
    _authorize_plan_reviewer(plan, reviewer)
    _require_plan_transition(plan, PlanApprovalState.REJECTED)
    logger.info(f"Specialty plan {plan.id} ({plan.specialty.value}) rejected by {reviewer.id}")
    return replace(
        plan,
        status=PlanStatus.REJECTED,
        approval_status=PlanApprovalState.REJECTED,
        rejected_by=reviewer.id,
        rejection_reason=reason.strip(),
        revision=plan.revision + 1,
    )


def request_revision(
    plan: SpecialtyTreatmentPlan,
    notes: str,
    reviewer: Optional[TeamMember] = None,
) -> SpecialtyTreatmentPlan:
    """
    pending → needs_revision; the plan's ``status`` stays submitted.

    When ``reviewer`` is given the same rules as approval apply.
    """
    if not notes or not notes.strip():
        raise PlanValidationError("Revision notes are required", field="notes")
    if reviewer is not None:
        _authorize_plan_reviewer(plan, reviewer)
    _require_plan_transition(plan, PlanApprovalState.NEEDS_REVISION)
    requested_by = f" by {reviewer.id}" if reviewer else ""
    logger.info(f"Revision requested for specialty plan {plan.id} ({plan.specialty.value}){requested_by}")
    return replace(
        plan,
        approval_status=PlanApprovalState.NEEDS_REVISION,
        revision_notes=notes.strip(),
        revision=plan.revision + 1,
    )


def get_pending_approvals(
    plans: Iterable[SpecialtyTreatmentPlan],
    consultant_id: str,
) -> List[SpecialtyTreatmentPlan]:
    """Submitted plans awaiting review, excluding the consultant's own."""
    return [
        p for p in plans
        if p.status == PlanStatus.SUBMITTED
        and p.approval_status == PlanApprovalState.PENDING
        and p.submitted_by.id != consultant_id
    ]


# ── Harmonized plan transitions ──────────────────────────────────────────────

def approve_care_plan(
    plan: HarmonizedCarePlan,
    approver: TeamMember,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> HarmonizedCarePlan:
    """
    Record an approval of a harmonized care plan.

    A contributing-specialty approval moves the plan to pending_approval.
    The designated primary consultant's approval sets ``final_approval`` and
    moves it to approved; no further approvals are accepted after that.

    Raises:
        AuthorizationError: approver is neither primary nor a contributor.
        WorkflowStateError: plan is closed, or approver already signed.
    """
    is_final = authorize_care_plan_actor(plan, approver)
    target = CarePlanState.APPROVED if is_final else CarePlanState.PENDING_APPROVAL
    _require_care_plan_transition(plan, target)

    if plan.final_approval is not None:
        raise WorkflowStateError(
            f"Care plan {plan.id} already has a final approval",
            current_state=plan.status.value,
        )
    if any(a.approved_by == approver.id for a in plan.approvals):
        raise WorkflowStateError(
            f"{approver.name} has already approved care plan {plan.id} v{plan.version}",
            current_state=plan.status.value,
            details={"approver_id": approver.id},
        )

    stamp = _now(now)
    record = ApprovalRecord(
        specialty=approver.specialty,
        approved_by=approver.id,
        approver_name=approver.name,
        approved_at=stamp,
        comments=comments,
    )

    final_approval = None
    context = {"care_plan_id": plan.id, "patient_id": plan.patient_id, "actor_id": approver.id}
    if is_final:
        final_approval = FinalApproval(approved_by=approver.id, approved_at=stamp)
        if plan.unresolved_conflicts:
            logger.warning(
                f"Care plan v{plan.version} finalised with "
                f"{len(plan.unresolved_conflicts)} unresolved conflict(s)",
                extra=context,
            )
        logger.info(f"Care plan v{plan.version} final approval", extra=context)
    else:
        logger.info(
            f"Care plan v{plan.version} approved by {approver.specialty.value}; "
            f"awaiting primary consultant",
            extra=context,
        )

    return replace(
        plan,
        status=target,
        approvals=[*plan.approvals, record],
        final_approval=final_approval,
        updated_at=stamp,
        revision=plan.revision + 1,
    )


def activate_care_plan(
    plan: HarmonizedCarePlan,
    actor: TeamMember,
    now: Optional[datetime] = None,
) -> HarmonizedCarePlan:
    """approved → active; only the designated primary consultant may do this."""
    if not is_designated_primary(plan, actor):
        raise AuthorizationError(
            f"Only the primary consultant may activate care plan {plan.id}",
            actor_id=actor.id,
            details={"care_plan_id": plan.id},
        )
    _require_care_plan_transition(plan, CarePlanState.ACTIVE)
    stamp = _now(now)
    logger.info(f"Care plan {plan.id} v{plan.version} is now the active treatment record")
    return replace(
        plan,
        status=CarePlanState.ACTIVE,
        activated_at=stamp,
        updated_at=stamp,
        revision=plan.revision + 1,
    )


def supersede_care_plan(plan: HarmonizedCarePlan, now: Optional[datetime] = None) -> HarmonizedCarePlan:
    _require_care_plan_transition(plan, CarePlanState.SUPERSEDED)
    return replace(
        plan,
        status=CarePlanState.SUPERSEDED,
        updated_at=_now(now),
        revision=plan.revision + 1,
    )


def resolve_conflict(
    plan: HarmonizedCarePlan,
    conflict_id: str,
    resolution: str,
    resolved_by: TeamMember,
    now: Optional[datetime] = None,
) -> HarmonizedCarePlan:
    """Mark one treatment conflict resolved while the plan is still open."""
    authorize_care_plan_actor(plan, resolved_by)
    if plan.status not in _OPEN_CARE_PLAN_STATES:
        raise WorkflowStateError(
            f"Care plan {plan.id} is {plan.status.value}; conflicts can no longer be resolved",
            current_state=plan.status.value,
        )
    if not resolution or not resolution.strip():
        raise PlanValidationError("A resolution is required", field="resolution")

    treatments = []
    found = False
    for treatment in plan.treatment_plans:
        if any(c.id == conflict_id for c in treatment.conflicts):
            found = True
            conflicts = [
                replace(c, resolved=True, resolution=resolution.strip(), resolved_by=resolved_by.id)
                if c.id == conflict_id else c
                for c in treatment.conflicts
            ]
            treatment = replace(treatment, conflicts=conflicts, resolution=resolution.strip())
        treatments.append(treatment)

    if not found:
        raise NotFoundError(f"Conflict {conflict_id} not found on care plan {plan.id}", resource="conflict")

    logger.info(f"Conflict {conflict_id} on care plan {plan.id} resolved by {resolved_by.id}")
    return replace(
        plan,
        treatment_plans=treatments,
        updated_at=_now(now),
        revision=plan.revision + 1,
    )
