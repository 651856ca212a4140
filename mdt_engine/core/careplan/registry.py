"""
Plan Registry

Creates specialty plans, validates them at the boundary and holds one live
plan per (patient, specialty, meeting). Writes use compare-and-swap on the
plan's ``revision`` so two reviewers working from the same snapshot cannot
overwrite each other.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from mdt_engine.utils import (
    get_logger,
    AuthorizationError,
    NotFoundError,
    PlanValidationError,
    VersionConflictError,
    WorkflowStateError,
)
from .base import (
    EvidenceLevel,
    Goal,
    GoalStatus,
    InvestigationRecommendation,
    MedicationAction,
    MedicationRecommendation,
    PlanApprovalState,
    PlanStatus,
    PriorityLevel,
    ProcedureRecommendation,
    Specialty,
    SpecialtyTreatmentPlan,
    TeamMember,
    TreatmentRecommendation,
)

logger = get_logger(__name__)

PlanKey = Tuple[str, Specialty, Optional[str]]

# Plans eligible to feed a harmonization
_HARMONIZABLE_STATUSES = frozenset({PlanStatus.SUBMITTED, PlanStatus.APPROVED})
_HARMONIZABLE_APPROVALS = frozenset({PlanApprovalState.PENDING, PlanApprovalState.APPROVED})
_RESUBMITTABLE_APPROVALS = frozenset({PlanApprovalState.REJECTED, PlanApprovalState.NEEDS_REVISION})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: Optional[str], field: str, index: Optional[int] = None) -> None:
    if not value or not value.strip():
        details = {"index": index} if index is not None else None
        raise PlanValidationError(f"{field} must not be empty", field=field, details=details)


def _coerce(enum_type: Type[Enum], value: Any, field: str, index: int) -> Enum:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise PlanValidationError(
            f"{field} must be one of: {allowed} (got {value!r})",
            field=field,
            details={"index": index},
        ) from None


def _checked_goal(goal: Goal, group: str, index: int) -> Goal:
    _require_text(goal.description, f"{group}.description", index)
    return replace(goal, status=_coerce(GoalStatus, goal.status, f"{group}.status", index))


def create_specialty_plan(
    patient_id: str,
    specialty: Specialty,
    submitted_by: TeamMember,
    clinical_findings: str = "",
    diagnosis: Optional[Sequence[str]] = None,
    recommendations: Optional[Sequence[TreatmentRecommendation]] = None,
    medications: Optional[Sequence[MedicationRecommendation]] = None,
    short_term_goals: Optional[Sequence[Goal]] = None,
    long_term_goals: Optional[Sequence[Goal]] = None,
    *,
    investigations: Optional[Sequence[InvestigationRecommendation]] = None,
    procedures: Optional[Sequence[ProcedureRecommendation]] = None,
    meeting_id: Optional[str] = None,
    special_notes: Optional[str] = None,
    contraindications: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> SpecialtyTreatmentPlan:
    """
    Build a validated draft plan with ``approval_status = pending``.

    Malformed records are rejected here rather than at harmonization time.

    Raises:
        PlanValidationError: missing patient, specialty mismatch with the
            submitter, a record without its required text, or an action,
            priority, urgency or status outside its vocabulary.
    """
    _require_text(patient_id, "patient_id")
    if submitted_by.specialty != specialty:
        raise PlanValidationError(
            f"{submitted_by.name} belongs to {submitted_by.specialty.value}, "
            f"cannot submit a {specialty.value} plan",
            field="specialty",
        )

    recommendations = list(recommendations or [])
    for i, rec in enumerate(recommendations):
        _require_text(rec.category, "recommendations.category", i)
        _require_text(rec.description, "recommendations.description", i)
        recommendations[i] = replace(
            rec,
            priority=_coerce(PriorityLevel, rec.priority, "recommendations.priority", i),
            evidence_level=(
                None if rec.evidence_level is None
                else _coerce(EvidenceLevel, rec.evidence_level, "recommendations.evidence_level", i)
            ),
        )

    medications = list(medications or [])
    for i, med in enumerate(medications):
        _require_text(med.medication_name, "medications.medication_name", i)
        medications[i] = replace(med, action=_coerce(MedicationAction, med.action, "medications.action", i))

    investigations = list(investigations or [])
    for i, inv in enumerate(investigations):
        _require_text(inv.test_name, "investigations.test_name", i)
        investigations[i] = replace(inv, urgency=_coerce(PriorityLevel, inv.urgency, "investigations.urgency", i))

    procedures = list(procedures or [])
    for i, proc in enumerate(procedures):
        _require_text(proc.procedure_name, "procedures.procedure_name", i)
        procedures[i] = replace(proc, urgency=_coerce(PriorityLevel, proc.urgency, "procedures.urgency", i))

    short_term_goals = [_checked_goal(g, "short_term_goals", i) for i, g in enumerate(short_term_goals or [])]
    long_term_goals = [_checked_goal(g, "long_term_goals", i) for i, g in enumerate(long_term_goals or [])]

    return SpecialtyTreatmentPlan(
        id=str(uuid.uuid4()),
        patient_id=patient_id.strip(),
        meeting_id=meeting_id,
        specialty=specialty,
        submitted_by=submitted_by,
        submitted_at=now or _utcnow(),
        status=PlanStatus.DRAFT,
        clinical_findings=clinical_findings,
        diagnosis=[d.strip() for d in (diagnosis or []) if d and d.strip()],
        recommendations=recommendations,
        medications=medications,
        investigations=investigations,
        procedures=procedures,
        short_term_goals=short_term_goals,
        long_term_goals=long_term_goals,
        special_notes=special_notes,
        contraindications=list(contraindications or []),
        approval_status=PlanApprovalState.PENDING,
    )


class PlanRegistry:
    """
    In-memory store of specialty plans.

    The lock only guards the compare-and-swap itself; callers read a
    snapshot, transform it, and write it back with the revision they read.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._plans: Dict[str, SpecialtyTreatmentPlan] = {}
        self._live: Dict[PlanKey, str] = {}
        self._lock = threading.Lock()

    # ── Creation ─────────────────────────────────────────────────────────────

    def create_specialty_plan(self, *args, **kwargs) -> SpecialtyTreatmentPlan:
        """Validate, build and register a draft plan (see module function)."""
        kwargs.setdefault("now", self._clock())
        plan = create_specialty_plan(*args, **kwargs)
        with self._lock:
            key = self._key(plan)
            if key in self._live:
                raise PlanValidationError(
                    f"A {plan.specialty.value} plan already exists for patient "
                    f"{plan.patient_id} in this meeting; resubmit it instead",
                    field="specialty",
                    details={"existing_plan_id": self._live[key]},
                )
            self._plans[plan.id] = plan
            self._live[key] = plan.id
        logger.info(f"Registered {plan.specialty.value} plan {plan.id} for patient {plan.patient_id}")
        return plan

    def submit(self, plan_id: str, actor: TeamMember) -> SpecialtyTreatmentPlan:
        """draft → submitted, by the owning specialist."""
        plan = self.get(plan_id)
        if actor.id != plan.submitted_by.id:
            raise AuthorizationError(
                f"Only {plan.submitted_by.name} may submit plan {plan.id}",
                actor_id=actor.id,
            )
        if plan.status != PlanStatus.DRAFT:
            raise WorkflowStateError(
                f"Plan {plan.id} is {plan.status.value}, not draft",
                current_state=plan.status.value,
            )
        submitted = replace(
            plan,
            status=PlanStatus.SUBMITTED,
            submitted_at=self._clock(),
            revision=plan.revision + 1,
        )
        return self.update(submitted, expected_revision=plan.revision)

    def resubmit(
        self,
        plan_id: str,
        actor: TeamMember,
        **changes,
    ) -> SpecialtyTreatmentPlan:
        """
        Replace a rejected or needs-revision plan with a fresh submission.

        The old plan is marked superseded and stays readable; the new plan
        gets a new id, ``supersedes`` pointing at the old one, status
        submitted and approval pending. ``changes`` are content fields of
        :func:`create_specialty_plan`; anything omitted is carried over.
        """
        old = self.get(plan_id)
        if actor.id != old.submitted_by.id:
            raise AuthorizationError(
                f"Only {old.submitted_by.name} may resubmit plan {old.id}",
                actor_id=actor.id,
            )
        if old.status == PlanStatus.SUPERSEDED or old.approval_status not in _RESUBMITTABLE_APPROVALS:
            raise WorkflowStateError(
                f"Plan {old.id} is {old.approval_status.value}; only rejected or "
                f"needs-revision plans can be resubmitted",
                current_state=old.approval_status.value,
            )

        content = {
            "clinical_findings": old.clinical_findings,
            "diagnosis": old.diagnosis,
            "recommendations": old.recommendations,
            "medications": old.medications,
            "short_term_goals": old.short_term_goals,
            "long_term_goals": old.long_term_goals,
            "investigations": old.investigations,
            "procedures": old.procedures,
            "special_notes": old.special_notes,
            "contraindications": old.contraindications,
        }
        unknown = set(changes) - set(content)
        if unknown:
            raise PlanValidationError(
                f"Cannot change {sorted(unknown)} on resubmission",
                field=sorted(unknown)[0],
            )
        content.update(changes)

        fresh = create_specialty_plan(
            old.patient_id, old.specialty, old.submitted_by,
            meeting_id=old.meeting_id, now=self._clock(), **content,
        )
        fresh = replace(fresh, status=PlanStatus.SUBMITTED, supersedes=old.id)

        with self._lock:
            current = self._plans[old.id]
            if current.revision != old.revision:
                raise VersionConflictError(
                    f"Plan {old.id} changed while resubmitting",
                    expected=old.revision,
                    actual=current.revision,
                )
            self._plans[old.id] = replace(old, status=PlanStatus.SUPERSEDED, revision=old.revision + 1)
            self._plans[fresh.id] = fresh
            self._live[self._key(fresh)] = fresh.id

        logger.info(f"Plan {old.id} superseded by resubmission {fresh.id}")
        return fresh

    # ── Writes ───────────────────────────────────────────────────────────────

    def update(self, plan: SpecialtyTreatmentPlan, expected_revision: int) -> SpecialtyTreatmentPlan:
        """
        Store ``plan`` if the stored copy is still at ``expected_revision``.

        Raises:
            NotFoundError: unknown plan id.
            VersionConflictError: someone else wrote first.
        """
        with self._lock:
            current = self._plans.get(plan.id)
            if current is None:
                raise NotFoundError(f"Plan {plan.id} not found", resource="specialty_plan")
            if current.revision != expected_revision:
                raise VersionConflictError(
                    f"Plan {plan.id} is at revision {current.revision}, "
                    f"write was based on {expected_revision}",
                    expected=expected_revision,
                    actual=current.revision,
                    details={"plan_id": plan.id},
                )
            if current.status == PlanStatus.SUPERSEDED:
                raise VersionConflictError(
                    f"Plan {plan.id} has been superseded",
                    expected=expected_revision,
                    actual=current.revision,
                    details={"plan_id": plan.id},
                )
            self._plans[plan.id] = plan
        return plan

    # ── Queries ──────────────────────────────────────────────────────────────

    def get(self, plan_id: str) -> SpecialtyTreatmentPlan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError(f"Plan {plan_id} not found", resource="specialty_plan")
        return plan

    def plans_for(
        self,
        patient_id: str,
        meeting_id: Optional[str] = None,
        include_superseded: bool = False,
    ) -> List[SpecialtyTreatmentPlan]:
        """Plans for a patient (and meeting), in registration order."""
        return [
            p for p in self._plans.values()
            if p.patient_id == patient_id
            and (meeting_id is None or p.meeting_id == meeting_id)
            and (include_superseded or p.status != PlanStatus.SUPERSEDED)
        ]

    def harmonizable_plans(self, patient_id: str, meeting_id: Optional[str]) -> List[SpecialtyTreatmentPlan]:
        """Submitted or approved plans not turned down by a reviewer, in submission order."""
        eligible = [
            p for p in self.plans_for(patient_id, meeting_id)
            if p.status in _HARMONIZABLE_STATUSES and p.approval_status in _HARMONIZABLE_APPROVALS
        ]
        return sorted(eligible, key=lambda p: p.submitted_at)

    def status_counts(self, patient_id: str, meeting_id: Optional[str] = None) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for plan in self.plans_for(patient_id, meeting_id, include_superseded=True):
            counts[plan.approval_status.value] = counts.get(plan.approval_status.value, 0) + 1
        return counts

    def all_plans(self) -> Iterable[SpecialtyTreatmentPlan]:
        return list(self._plans.values())

    @staticmethod
    def _key(plan: SpecialtyTreatmentPlan) -> PlanKey:
        return (plan.patient_id, plan.specialty, plan.meeting_id)
