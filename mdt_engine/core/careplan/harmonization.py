"""
Harmonization Engine

Merges N specialty plans for one patient/meeting into a single
``HarmonizedCarePlan``.

Usage:
    from mdt_engine.core.careplan import HarmonizationEngine

    engine = HarmonizationEngine()
    care_plan = engine.harmonize(plans, primary_consultant, patient_id, meeting_id)
    for t in care_plan.treatment_plans:
        print(t.category, t.priority, [c.description for c in t.conflicts])

The merge is a pure function of its inputs. Every grouping is keyed in an
ordered dict, so output follows first-seen order of the plans as given, and
ids are derived with ``uuid5`` from the patient, meeting, version and the
grouping key. Two runs over the same ordered plans with the same ``now``
produce identical plans.
"""
from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from mdt_engine import config
from mdt_engine.utils import (
    get_logger,
    AuthorizationError,
    InsufficientInputError,
    PlanValidationError,
)
from .base import (
    CarePlanState,
    Goal,
    HarmonizedCarePlan,
    HarmonizedTreatment,
    InvestigationRecommendation,
    MedicationAction,
    MedicationRecommendation,
    MedicationStatus,
    OriginalMedicationRecommendation,
    PriorityLevel,
    ReconciledMedication,
    ScheduledProcedure,
    Specialty,
    SpecialtyTreatmentPlan,
    TeamMember,
    TeamResponsibility,
    TreatmentConflict,
    TreatmentRecommendation,
)
from .interactions import InteractionRuleProvider, default_provider
from .specialties import display_name

logger = get_logger(__name__)

# Precedence when specialties disagree on one drug (lower = wins)
_ACTION_PRECEDENCE = {
    MedicationAction.DISCONTINUE: 0,
    MedicationAction.MODIFY:      1,
    MedicationAction.ADD:         2,
    MedicationAction.CONTINUE:    3,
}

# Investigation sort order (lower = more urgent → appears first)
_URGENCY_ORDER = {
    PriorityLevel.CRITICAL: 0,
    PriorityLevel.URGENT:   1,
    PriorityLevel.ROUTINE:  2,
}

_ANAESTHESIA_SPECIALTIES = frozenset(Specialty(s) for s in config.ANAESTHESIA_SPECIALTIES)


def _stable_id(namespace: uuid.UUID, *parts: object) -> str:
    return str(uuid.uuid5(namespace, ":".join(str(p) for p in parts)))


def _join_present(*values: Optional[str]) -> str:
    return " ".join(v for v in values if v)


def _first_present(values: Sequence[Optional[str]]) -> Optional[str]:
    for v in values:
        if v:
            return v
    return None


def resolve_final_decision(actions: Sequence[MedicationAction]) -> MedicationAction:
    """Apply ``discontinue > modify > add > continue`` over requested actions."""
    if not actions:
        return MedicationAction.CONTINUE
    return min(actions, key=lambda a: _ACTION_PRECEDENCE[a])


def highest_priority(priorities: Sequence[PriorityLevel]) -> PriorityLevel:
    return max(priorities, key=lambda p: p.rank, default=PriorityLevel.ROUTINE)


class HarmonizationEngine:
    """
    Merges specialty plans into a draft harmonized care plan.

    Stateless apart from the interaction rule provider, so one instance may
    serve concurrent requests.
    """

    def __init__(self, interaction_provider: Optional[InteractionRuleProvider] = None):
        self.interaction_provider = interaction_provider or default_provider()

    def harmonize(
        self,
        plans: Sequence[SpecialtyTreatmentPlan],
        primary_consultant: TeamMember,
        patient_id: str,
        meeting_id: str,
        *,
        version: int = 1,
        now: Optional[datetime] = None,
    ) -> HarmonizedCarePlan:
        """
        Build a draft harmonized plan from ``plans``.

        Args:
            plans: Specialty plans already filtered to submitted/approved,
                   in submission order.
            primary_consultant: The member whose approval finalizes the plan.
            patient_id, meeting_id: Scope of the merge.
            version: 1 for a first merge; the caller passes the next number
                     when re-harmonizing the same patient/meeting.
            now: Clock reading used for timestamps and the review date.

        Raises:
            InsufficientInputError: fewer than two plans.
            AuthorizationError: ``primary_consultant`` is not flagged as one.
            PlanValidationError: a plan belongs to a different patient.
        """
        self._check_preconditions(plans, primary_consultant, patient_id, version)
        now = now or datetime.now(timezone.utc)
        namespace = uuid.uuid5(uuid.NAMESPACE_URL, f"mdt-care-plan:{patient_id}:{meeting_id}:{version}")

        primary_diagnosis, secondary_diagnoses = self._merge_diagnoses(plans)
        treatments = self._harmonize_treatments(plans, namespace)
        medications = self._reconcile_medications(plans, primary_consultant, namespace)
        investigations = self._combine_investigations(plans)
        procedures = self._combine_procedures(plans)
        goals = self._combine_goals(plans)
        responsibilities = self._assign_team_responsibilities(plans)

        conflict_count = sum(len(t.conflicts) for t in treatments)
        flagged = sum(1 for m in medications if m.interactions)
        logger.info(
            f"HarmonizationEngine [{patient_id}/{meeting_id} v{version}]: "
            f"{len(plans)} plan(s) → {len(treatments)} treatment group(s), "
            f"{conflict_count} conflict(s), {len(medications)} medication(s), "
            f"{flagged} with interactions",
            extra={"patient_id": patient_id, "meeting_id": meeting_id},
        )

        return HarmonizedCarePlan(
            id=str(namespace),
            patient_id=patient_id,
            meeting_id=meeting_id,
            version=version,
            status=CarePlanState.DRAFT,
            primary_consultant=primary_consultant,
            primary_diagnosis=primary_diagnosis,
            secondary_diagnoses=secondary_diagnoses,
            treatment_plans=treatments,
            reconciled_medications=medications,
            investigations=investigations,
            procedures=procedures,
            patient_goals=goals,
            team_responsibilities=responsibilities,
            review_date=now + timedelta(days=config.REVIEW_PERIOD_DAYS),
            escalation_criteria=list(config.ESCALATION_CRITERIA),
            approvals=[],
            final_approval=None,
            created_at=now,
            updated_at=now,
        )

    # ── Preconditions ────────────────────────────────────────────────────────

    @staticmethod
    def _check_preconditions(
        plans: Sequence[SpecialtyTreatmentPlan],
        primary_consultant: TeamMember,
        patient_id: str,
        version: int,
    ) -> None:
        if len(plans) < config.MIN_PLANS_TO_HARMONIZE:
            raise InsufficientInputError(
                f"Harmonization needs at least {config.MIN_PLANS_TO_HARMONIZE} "
                f"specialty plans, got {len(plans)}",
                received=len(plans),
                required=config.MIN_PLANS_TO_HARMONIZE,
                details={"patient_id": patient_id},
            )
        if not primary_consultant.is_primary_consultant:
            raise AuthorizationError(
                f"{primary_consultant.name} is not a primary consultant",
                actor_id=primary_consultant.id,
            )
        if version < 1:
            raise PlanValidationError(f"Invalid care plan version {version}", field="version")
        for plan in plans:
            if plan.patient_id != patient_id:
                raise PlanValidationError(
                    f"Plan {plan.id} belongs to patient {plan.patient_id}, not {patient_id}",
                    field="patient_id",
                    details={"plan_id": plan.id},
                )

    # ── Step 1: diagnoses ────────────────────────────────────────────────────

    @staticmethod
    def _merge_diagnoses(plans: Sequence[SpecialtyTreatmentPlan]) -> Tuple[str, List[str]]:
        """Case-insensitive union in first-seen order; the first is primary."""
        seen: "OrderedDict[str, str]" = OrderedDict()
        for plan in plans:
            for diagnosis in plan.diagnosis:
                key = diagnosis.strip().lower()
                if key and key not in seen:
                    seen[key] = diagnosis.strip()
        merged = list(seen.values())
        if not merged:
            return "", []
        return merged[0], merged[1:]

    # ── Steps 2 + 3: treatments and conflicts ────────────────────────────────

    def _harmonize_treatments(
        self,
        plans: Sequence[SpecialtyTreatmentPlan],
        namespace: uuid.UUID,
    ) -> List[HarmonizedTreatment]:
        groups: "OrderedDict[str, List[Tuple[Specialty, TreatmentRecommendation]]]" = OrderedDict()
        for plan in plans:
            for rec in plan.recommendations:
                groups.setdefault(rec.category.strip().lower(), []).append((plan.specialty, rec))

        harmonized: List[HarmonizedTreatment] = []
        for category, entries in groups.items():
            specialties: List[Specialty] = []
            for specialty, _ in entries:
                if specialty not in specialties:
                    specialties.append(specialty)
            recs = [rec for _, rec in entries]

            frequencies = list(OrderedDict.fromkeys(r.frequency for r in recs if r.frequency))
            durations = list(OrderedDict.fromkeys(r.duration for r in recs if r.duration))

            harmonized.append(HarmonizedTreatment(
                id=_stable_id(namespace, "treatment", category),
                category=category,
                description="; ".join(r.description for r in recs),
                source_specialties=specialties,
                priority=highest_priority([r.priority for r in recs]),
                assigned_team=specialties[0],
                rationale="; ".join(r.rationale for r in recs),
                frequency=frequencies[0] if len(frequencies) == 1 else None,
                duration=durations[0] if len(durations) == 1 else None,
                conflicts=self._detect_conflicts(
                    recs, specialties, frequencies, durations,
                    _stable_id(namespace, "conflict", category),
                ),
            ))
        return harmonized

    @staticmethod
    def _detect_conflicts(
        recs: Sequence[TreatmentRecommendation],
        specialties: List[Specialty],
        frequencies: List[str],
        durations: List[str],
        conflict_id: str,
    ) -> List[TreatmentConflict]:
        """One unresolved conflict when contributors disagree on frequency or duration."""
        if len(recs) < 2:
            return []
        if len(frequencies) <= 1 and len(durations) <= 1:
            return []

        variants = " vs ".join(
            f"{r.description} ({r.frequency or 'unspecified frequency'}, "
            f"{r.duration or 'unspecified duration'})"
            for r in recs
        )
        return [TreatmentConflict(
            id=conflict_id,
            conflicting_specialties=list(specialties),
            description=f"Differing recommendations: {variants}",
            resolved=False,
        )]

    # ── Step 4: medications ──────────────────────────────────────────────────

    def _reconcile_medications(
        self,
        plans: Sequence[SpecialtyTreatmentPlan],
        primary_consultant: TeamMember,
        namespace: uuid.UUID,
    ) -> List[ReconciledMedication]:
        groups: "OrderedDict[str, List[Tuple[Specialty, MedicationRecommendation]]]" = OrderedDict()
        for plan in plans:
            for med in plan.medications:
                groups.setdefault(med.medication_name.strip().lower(), []).append((plan.specialty, med))

        # Display name per group = first-seen spelling
        names: Dict[str, str] = {key: entries[0][1].medication_name.strip() for key, entries in groups.items()}

        reconciled: List[ReconciledMedication] = []
        for key, entries in groups.items():
            meds = [m for _, m in entries]
            others = [name for other_key, name in names.items() if other_key != key]
            interactions, checked = self.interaction_provider.assess(names[key], others)

            final = resolve_final_decision([m.action for m in meds])
            # Instructions come from the recommendation whose action won
            decisive_specialty, decisive = next((s, m) for s, m in entries if m.action == final)

            if len(entries) > 1:
                rationale = "Reconciled from multiple specialty recommendations"
            else:
                rationale = decisive.rationale

            monitoring: List[str] = []
            for m in meds:
                for item in m.monitoring:
                    if item not in monitoring:
                        monitoring.append(item)

            reconciled.append(ReconciledMedication(
                id=_stable_id(namespace, "medication", key),
                medication_name=names[key],
                generic_name=names[key],
                dose=decisive.dose or _first_present([m.dose for m in meds]) or "",
                route=decisive.route or _first_present([m.route for m in meds]) or config.DEFAULT_ROUTE,
                frequency=decisive.frequency or _first_present([m.frequency for m in meds]) or "",
                duration=decisive.duration or _first_present([m.duration for m in meds]),
                indication=decisive.indication or _first_present([m.indication for m in meds]) or "",
                prescribing_specialty=decisive_specialty,
                status=(MedicationStatus.DISCONTINUED if final == MedicationAction.DISCONTINUE
                        else MedicationStatus.ACTIVE),
                original_recommendations=[
                    OriginalMedicationRecommendation(
                        specialty=specialty,
                        action=m.action,
                        details=_join_present(m.dose, m.route, m.frequency),
                    )
                    for specialty, m in entries
                ],
                interactions=interactions,
                contraindications_checked=checked,
                final_decision=final,
                decision_rationale=rationale,
                approved_by=primary_consultant.id,
                monitoring=monitoring,
            ))
        return reconciled

    # ── Steps 5-8: unions ────────────────────────────────────────────────────

    @staticmethod
    def _combine_investigations(plans: Sequence[SpecialtyTreatmentPlan]) -> List[InvestigationRecommendation]:
        """Dedup by test name (first wins), then a stable sort by urgency."""
        seen = set()
        investigations: List[InvestigationRecommendation] = []
        for plan in plans:
            for inv in plan.investigations:
                key = inv.test_name.strip().lower()
                if key not in seen:
                    seen.add(key)
                    investigations.append(replace(inv))
        investigations.sort(key=lambda i: _URGENCY_ORDER[i.urgency])
        return investigations

    @staticmethod
    def _combine_procedures(plans: Sequence[SpecialtyTreatmentPlan]) -> List[ScheduledProcedure]:
        procedures: List[ScheduledProcedure] = []
        for plan in plans:
            for proc in plan.procedures:
                procedures.append(ScheduledProcedure(
                    id=proc.id,
                    procedure_name=proc.procedure_name,
                    specialty=plan.specialty,
                    scheduled_date=proc.expected_date,
                    priority=proc.urgency,
                    prerequisites=list(proc.prerequisites),
                    prerequisites_met=False,
                    performing_team=display_name(plan.specialty),
                    anesthesia_required=plan.specialty in _ANAESTHESIA_SPECIALTIES,
                    estimated_duration=config.DEFAULT_PROCEDURE_MINUTES,
                ))
        return procedures

    @staticmethod
    def _combine_goals(plans: Sequence[SpecialtyTreatmentPlan]) -> List[Goal]:
        goals: List[Goal] = []
        for plan in plans:
            goals.extend(replace(g) for g in plan.short_term_goals + plan.long_term_goals)
        return goals

    @staticmethod
    def _assign_team_responsibilities(plans: Sequence[SpecialtyTreatmentPlan]) -> List[TeamResponsibility]:
        return [
            TeamResponsibility(
                specialty=plan.specialty,
                team_lead=plan.submitted_by.name,
                team_lead_id=plan.submitted_by.id,
                responsibilities=[r.description for r in plan.recommendations],
                review_schedule=config.DEFAULT_REVIEW_SCHEDULE,
                escalation_contact=plan.submitted_by.contact_number or config.DEFAULT_ESCALATION_CONTACT,
            )
            for plan in plans
        ]


def harmonize_treatment_plans(
    plans: Sequence[SpecialtyTreatmentPlan],
    primary_consultant: TeamMember,
    patient_id: str,
    meeting_id: str,
    *,
    version: int = 1,
    now: Optional[datetime] = None,
    interaction_provider: Optional[InteractionRuleProvider] = None,
) -> HarmonizedCarePlan:
    """Functional entry point over a fresh :class:`HarmonizationEngine`."""
    engine = HarmonizationEngine(interaction_provider)
    return engine.harmonize(
        plans, primary_consultant, patient_id, meeting_id, version=version, now=now,
    )


def calculate_team_workload(plan: HarmonizedCarePlan) -> Dict[Specialty, int]:
    """Number of harmonized treatment groups assigned to each specialty."""
    workload: Dict[Specialty, int] = {}
    for treatment in plan.treatment_plans:
        workload[treatment.assigned_team] = workload.get(treatment.assigned_team, 0) + 1
    return workload
