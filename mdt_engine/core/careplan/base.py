"""
Care Plan Layer — Base Types

Defines the data contracts shared by the registry, the harmonization engine
and the approval workflow: MDT meetings, per-specialty treatment plans and
the harmonized care plan produced from them.

Workflow states are closed enums. Every transition in ``workflow.py`` matches
them exhaustively, so adding a state without handling it fails loudly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ── Enumerations ─────────────────────────────────────────────────────────────

class Specialty(str, Enum):
    """Clinical specialties that may contribute to an MDT plan."""
    SURGERY              = "surgery"
    ANAESTHESIA          = "anaesthesia"
    MEDICINE             = "medicine"
    NURSING              = "nursing"
    PHARMACY             = "pharmacy"
    NUTRITION            = "nutrition"
    PHYSIOTHERAPY        = "physiotherapy"
    PSYCHOLOGY           = "psychology"
    SOCIAL_WORK          = "social_work"
    PALLIATIVE_CARE      = "palliative_care"
    ONCOLOGY             = "oncology"
    RADIOLOGY            = "radiology"
    PATHOLOGY            = "pathology"
    OCCUPATIONAL_THERAPY = "occupational_therapy"
    SPEECH_THERAPY       = "speech_therapy"


class PriorityLevel(str, Enum):
    """
    Clinical priority of a recommendation.

    CRITICAL – act immediately
    URGENT   – act within the current admission day
    ROUTINE  – schedule normally
    """
    ROUTINE  = "routine"
    URGENT   = "urgent"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Higher rank = more pressing."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    PriorityLevel.ROUTINE:  1,
    PriorityLevel.URGENT:   2,
    PriorityLevel.CRITICAL: 3,
}


class MeetingStatus(str, Enum):
    SCHEDULED   = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    CANCELLED   = "cancelled"


class PlanStatus(str, Enum):
    """Workflow-wide status of a specialty plan."""
    DRAFT      = "draft"
    SUBMITTED  = "submitted"
    APPROVED   = "approved"
    REJECTED   = "rejected"
    SUPERSEDED = "superseded"


class PlanApprovalState(str, Enum):
    """Reviewer decision on a specialty plan."""
    PENDING        = "pending"
    APPROVED       = "approved"
    REJECTED       = "rejected"
    NEEDS_REVISION = "needs_revision"


class CarePlanState(str, Enum):
    """Lifecycle of a harmonized care plan version."""
    DRAFT            = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED         = "approved"
    ACTIVE           = "active"
    SUPERSEDED       = "superseded"


class MedicationAction(str, Enum):
    CONTINUE    = "continue"
    MODIFY      = "modify"
    DISCONTINUE = "discontinue"
    ADD         = "add"


class MedicationStatus(str, Enum):
    ACTIVE       = "active"
    ON_HOLD      = "on_hold"
    DISCONTINUED = "discontinued"
    MODIFIED     = "modified"


class InteractionSeverity(str, Enum):
    MINOR           = "minor"
    MODERATE        = "moderate"
    MAJOR           = "major"
    CONTRAINDICATED = "contraindicated"


class ContraindicationCheck(str, Enum):
    """
    Outcome of the interaction check for one reconciled medication.

    CHECKED_CLEAR   – rules exist for the drug and none matched
    CHECKED_FLAGGED – rules exist and at least one matched
    NOT_CHECKED     – no rule exists; absence of a match proves nothing
    """
    CHECKED_CLEAR   = "checked-clear"
    CHECKED_FLAGGED = "checked-flagged"
    NOT_CHECKED     = "not-checked"


class EvidenceLevel(str, Enum):
    HIGH           = "high"
    MODERATE       = "moderate"
    LOW            = "low"
    EXPERT_OPINION = "expert_opinion"


class GoalStatus(str, Enum):
    NOT_STARTED  = "not_started"
    IN_PROGRESS  = "in_progress"
    ACHIEVED     = "achieved"
    NOT_ACHIEVED = "not_achieved"


class DecisionStatus(str, Enum):
    PENDING     = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"


class InvitationStatus(str, Enum):
    PENDING        = "pending"
    ACKNOWLEDGED   = "acknowledged"
    PLAN_SUBMITTED = "plan_submitted"


# ── People ───────────────────────────────────────────────────────────────────

@dataclass
class TeamMember:
    """A clinician taking part in an MDT. Referenced elsewhere by ``id``."""
    id: str
    name: str
    specialty: Specialty
    role: str = ""
    user_id: str = ""
    is_primary_consultant: bool = False
    contact_number: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id or self.id,
            "name": self.name,
            "role": self.role,
            "specialty": self.specialty.value,
            "is_primary_consultant": self.is_primary_consultant,
            "contact_number": self.contact_number,
            "email": self.email,
        }


# ── Meetings ─────────────────────────────────────────────────────────────────

@dataclass
class AgendaItem:
    id: str
    title: str
    description: str
    presenter: str
    duration: int                      # minutes
    documents: List[str] = field(default_factory=list)
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "presenter": self.presenter,
            "duration": self.duration,
            "documents": list(self.documents),
            "completed": self.completed,
        }


@dataclass
class MDTDecision:
    id: str
    topic: str
    decision: str
    rationale: str
    responsible: List[str] = field(default_factory=list)
    deadline: Optional[datetime] = None
    priority: PriorityLevel = PriorityLevel.ROUTINE
    status: DecisionStatus = DecisionStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "decision": self.decision,
            "rationale": self.rationale,
            "responsible": list(self.responsible),
            "deadline": _iso(self.deadline),
            "priority": self.priority.value,
            "status": self.status.value,
        }


@dataclass
class MeetingInvitation:
    """
    A specialist's invitation to contribute a plan to a meeting.

    Delivery (push, voice) is done elsewhere; this only tracks whether the
    specialist has responded.
    """
    id: str
    meeting_id: str
    patient_id: str
    specialist: TeamMember
    invited_by: str
    message: str
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    plan_submitted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meeting_id": self.meeting_id,
            "patient_id": self.patient_id,
            "specialist": self.specialist.to_dict(),
            "invited_by": self.invited_by,
            "message": self.message,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "acknowledged_at": _iso(self.acknowledged_at),
            "plan_submitted_at": _iso(self.plan_submitted_at),
        }


@dataclass
class MDTMeeting:
    id: str
    patient_id: str
    title: str
    scheduled_date: datetime
    duration: int                                       # minutes
    created_by: str
    status: MeetingStatus = MeetingStatus.SCHEDULED
    location: Optional[str] = None
    virtual_link: Optional[str] = None
    attendees: List[TeamMember] = field(default_factory=list)
    agenda: List[AgendaItem] = field(default_factory=list)
    minutes: Optional[str] = None
    decisions: List[MDTDecision] = field(default_factory=list)
    next_meeting_date: Optional[datetime] = None
    objectives: str = ""
    # Free text assembled by the clinical-data collaborator; never parsed here
    patient_summary: str = ""
    cancellation_reason: Optional[str] = None
    invitations: List[MeetingInvitation] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "title": self.title,
            "scheduled_date": _iso(self.scheduled_date),
            "duration": self.duration,
            "status": self.status.value,
            "location": self.location,
            "virtual_link": self.virtual_link,
            "attendees": [a.to_dict() for a in self.attendees],
            "agenda": [a.to_dict() for a in self.agenda],
            "minutes": self.minutes,
            "decisions": [d.to_dict() for d in self.decisions],
            "next_meeting_date": _iso(self.next_meeting_date),
            "objectives": self.objectives,
            "patient_summary": self.patient_summary,
            "cancellation_reason": self.cancellation_reason,
            "invitations": [i.to_dict() for i in self.invitations],
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ── Specialty plan contents ──────────────────────────────────────────────────

@dataclass
class TreatmentRecommendation:
    id: str
    category: str
    description: str
    priority: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    frequency: Optional[str] = None
    duration: Optional[str] = None
    evidence_level: Optional[EvidenceLevel] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "frequency": self.frequency,
            "duration": self.duration,
            "priority": self.priority.value,
            "rationale": self.rationale,
            "evidence_level": self.evidence_level.value if self.evidence_level else None,
        }


@dataclass
class MedicationRecommendation:
    id: str
    action: MedicationAction
    medication_name: str
    indication: str = ""
    rationale: str = ""
    dose: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    interactions: List[str] = field(default_factory=list)
    monitoring: List[str] = field(default_factory=list)
    special_instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.value,
            "medication_name": self.medication_name,
            "dose": self.dose,
            "route": self.route,
            "frequency": self.frequency,
            "duration": self.duration,
            "indication": self.indication,
            "rationale": self.rationale,
            "interactions": list(self.interactions),
            "monitoring": list(self.monitoring),
            "special_instructions": self.special_instructions,
        }


@dataclass
class InvestigationRecommendation:
    id: str
    test_name: str
    urgency: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    expected_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "test_name": self.test_name,
            "urgency": self.urgency.value,
            "rationale": self.rationale,
            "expected_date": _iso(self.expected_date),
        }


@dataclass
class ProcedureRecommendation:
    id: str
    procedure_name: str
    urgency: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    prerequisites: List[str] = field(default_factory=list)
    expected_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "procedure_name": self.procedure_name,
            "urgency": self.urgency.value,
            "rationale": self.rationale,
            "prerequisites": list(self.prerequisites),
            "expected_date": _iso(self.expected_date),
        }


@dataclass
class Goal:
    id: str
    description: str
    measurable_outcome: str = ""
    target_date: Optional[datetime] = None
    status: GoalStatus = GoalStatus.NOT_STARTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "target_date": _iso(self.target_date),
            "measurable_outcome": self.measurable_outcome,
            "status": self.status.value,
        }


@dataclass
class SpecialtyTreatmentPlan:
    """
    One specialty's proposal for one patient, optionally scoped to a meeting.

    Content is owned by the submitting specialist; the approval fields are
    owned by the reviewer. Plans are never deleted, only superseded.
    """
    # ── Identity ──────────────────────────────────────────────────────────
    id: str
    patient_id: str
    specialty: Specialty
    submitted_by: TeamMember
    submitted_at: datetime
    meeting_id: Optional[str] = None
    status: PlanStatus = PlanStatus.DRAFT

    # ── Clinical assessment ───────────────────────────────────────────────
    clinical_findings: str = ""
    diagnosis: List[str] = field(default_factory=list)

    # ── Recommendations ───────────────────────────────────────────────────
    recommendations: List[TreatmentRecommendation] = field(default_factory=list)
    medications: List[MedicationRecommendation] = field(default_factory=list)
    investigations: List[InvestigationRecommendation] = field(default_factory=list)
    procedures: List[ProcedureRecommendation] = field(default_factory=list)
    short_term_goals: List[Goal] = field(default_factory=list)
    long_term_goals: List[Goal] = field(default_factory=list)
    special_notes: Optional[str] = None
    contraindications: List[str] = field(default_factory=list)

    # ── Review ────────────────────────────────────────────────────────────
    approval_status: PlanApprovalState = PlanApprovalState.PENDING
    approved_by: Optional[str] = None
    approval_date: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    revision_notes: Optional[str] = None

    # ── Concurrency / lineage ─────────────────────────────────────────────
    revision: int = 0
    supersedes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "meeting_id": self.meeting_id,
            "specialty": self.specialty.value,
            "submitted_by": self.submitted_by.to_dict(),
            "submitted_at": _iso(self.submitted_at),
            "status": self.status.value,
            "clinical_findings": self.clinical_findings,
            "diagnosis": list(self.diagnosis),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "medications": [m.to_dict() for m in self.medications],
            "investigations": [i.to_dict() for i in self.investigations],
            "procedures": [p.to_dict() for p in self.procedures],
            "short_term_goals": [g.to_dict() for g in self.short_term_goals],
            "long_term_goals": [g.to_dict() for g in self.long_term_goals],
            "special_notes": self.special_notes,
            "contraindications": list(self.contraindications),
            "approval_status": self.approval_status.value,
            "approved_by": self.approved_by,
            "approval_date": _iso(self.approval_date),
            "rejected_by": self.rejected_by,
            "rejection_reason": self.rejection_reason,
            "revision_notes": self.revision_notes,
            "revision": self.revision,
            "supersedes": self.supersedes,
        }


# ── Harmonized output ────────────────────────────────────────────────────────

@dataclass
class TreatmentConflict:
    id: str
    conflicting_specialties: List[Specialty]
    description: str
    resolved: bool = False
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conflicting_specialties": [s.value for s in self.conflicting_specialties],
            "description": self.description,
            "resolved": self.resolved,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
        }


@dataclass
class HarmonizedTreatment:
    """One merged category of recommendations."""
    id: str
    category: str
    description: str
    source_specialties: List[Specialty]
    priority: PriorityLevel
    assigned_team: Specialty
    rationale: str
    frequency: Optional[str] = None
    duration: Optional[str] = None
    conflicts: List[TreatmentConflict] = field(default_factory=list)
    resolution: Optional[str] = None

    @property
    def has_unresolved_conflicts(self) -> bool:
        return any(not c.resolved for c in self.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "source_specialties": [s.value for s in self.source_specialties],
            "frequency": self.frequency,
            "duration": self.duration,
            "priority": self.priority.value,
            "assigned_team": self.assigned_team.value,
            "rationale": self.rationale,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "resolution": self.resolution,
        }


@dataclass
class DrugInteraction:
    interacting_drug: str
    severity: InteractionSeverity
    description: str
    management: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interacting_drug": self.interacting_drug,
            "severity": self.severity.value,
            "description": self.description,
            "management": self.management,
        }


@dataclass
class OriginalMedicationRecommendation:
    specialty: Specialty
    action: MedicationAction
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specialty": self.specialty.value,
            "action": self.action.value,
            "details": self.details,
        }


@dataclass
class ReconciledMedication:
    # ── Identity and merged instructions ──────────────────────────────────
    id: str
    medication_name: str
    generic_name: str
    dose: str
    route: str
    frequency: str
    indication: str
    prescribing_specialty: Specialty
    duration: Optional[str] = None

    # ── Reconciliation ────────────────────────────────────────────────────
    status: MedicationStatus = MedicationStatus.ACTIVE
    original_recommendations: List[OriginalMedicationRecommendation] = field(default_factory=list)

    # ── Safety checks ─────────────────────────────────────────────────────
    interactions: List[DrugInteraction] = field(default_factory=list)
    contraindications_checked: ContraindicationCheck = ContraindicationCheck.NOT_CHECKED
    renal_dose_adjusted: bool = False
    hepatic_dose_adjusted: bool = False

    # ── Decision ──────────────────────────────────────────────────────────
    final_decision: MedicationAction = MedicationAction.CONTINUE
    decision_rationale: str = ""
    approved_by: str = ""
    monitoring: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "medication_name": self.medication_name,
            "generic_name": self.generic_name,
            "dose": self.dose,
            "route": self.route,
            "frequency": self.frequency,
            "duration": self.duration,
            "indication": self.indication,
            "prescribing_specialty": self.prescribing_specialty.value,
            "status": self.status.value,
            "original_recommendations": [o.to_dict() for o in self.original_recommendations],
            "interactions": [i.to_dict() for i in self.interactions],
            "contraindications_checked": self.contraindications_checked.value,
            "renal_dose_adjusted": self.renal_dose_adjusted,
            "hepatic_dose_adjusted": self.hepatic_dose_adjusted,
            "final_decision": self.final_decision.value,
            "decision_rationale": self.decision_rationale,
            "approved_by": self.approved_by,
            "monitoring": list(self.monitoring),
        }


@dataclass
class ScheduledProcedure:
    id: str
    procedure_name: str
    specialty: Specialty
    priority: PriorityLevel
    performing_team: str
    anesthesia_required: bool
    estimated_duration: int                   # minutes
    prerequisites: List[str] = field(default_factory=list)
    prerequisites_met: bool = False
    scheduled_date: Optional[datetime] = None
    special_instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "procedure_name": self.procedure_name,
            "specialty": self.specialty.value,
            "scheduled_date": _iso(self.scheduled_date),
            "priority": self.priority.value,
            "prerequisites": list(self.prerequisites),
            "prerequisites_met": self.prerequisites_met,
            "performing_team": self.performing_team,
            "anesthesia_required": self.anesthesia_required,
            "estimated_duration": self.estimated_duration,
            "special_instructions": self.special_instructions,
        }


@dataclass
class TeamResponsibility:
    specialty: Specialty
    team_lead: str
    team_lead_id: str
    responsibilities: List[str]
    review_schedule: str
    escalation_contact: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specialty": self.specialty.value,
            "team_lead": self.team_lead,
            "team_lead_id": self.team_lead_id,
            "responsibilities": list(self.responsibilities),
            "review_schedule": self.review_schedule,
            "escalation_contact": self.escalation_contact,
        }


@dataclass(frozen=True)
class ApprovalRecord:
    """One entry in a care plan's append-only approval log."""
    specialty: Specialty
    approved_by: str
    approver_name: str
    approved_at: datetime
    comments: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specialty": self.specialty.value,
            "approved_by": self.approved_by,
            "approver_name": self.approver_name,
            "approved_at": _iso(self.approved_at),
            "comments": self.comments,
        }


@dataclass(frozen=True)
class FinalApproval:
    approved_by: str
    approved_at: datetime
    signature: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "signature": self.signature,
        }


@dataclass
class HarmonizedCarePlan:
    """
    The merged, conflict-annotated plan for one patient/meeting.

    ``version`` counts re-harmonizations of the same patient/meeting.
    ``revision`` counts writes to this version and is what the repository
    compares on update.
    """
    # ── Identity ──────────────────────────────────────────────────────────
    id: str
    patient_id: str
    meeting_id: str
    version: int
    status: CarePlanState
    primary_consultant: TeamMember

    # ── Harmonized content ────────────────────────────────────────────────
    primary_diagnosis: str
    secondary_diagnoses: List[str] = field(default_factory=list)
    treatment_plans: List[HarmonizedTreatment] = field(default_factory=list)
    reconciled_medications: List[ReconciledMedication] = field(default_factory=list)
    investigations: List[InvestigationRecommendation] = field(default_factory=list)
    procedures: List[ScheduledProcedure] = field(default_factory=list)
    patient_goals: List[Goal] = field(default_factory=list)
    team_responsibilities: List[TeamResponsibility] = field(default_factory=list)

    # ── Follow-up ─────────────────────────────────────────────────────────
    review_date: Optional[datetime] = None
    escalation_criteria: List[str] = field(default_factory=list)

    # ── Approval chain ────────────────────────────────────────────────────
    approvals: List[ApprovalRecord] = field(default_factory=list)
    final_approval: Optional[FinalApproval] = None
    activated_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revision: int = 0

    @property
    def contributing_specialties(self) -> List[Specialty]:
        """Specialties that submitted a plan into this merge, in order."""
        return [r.specialty for r in self.team_responsibilities]

    @property
    def unresolved_conflicts(self) -> List[TreatmentConflict]:
        return [c for t in self.treatment_plans for c in t.conflicts if not c.resolved]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "meeting_id": self.meeting_id,
            "version": self.version,
            "revision": self.revision,
            "status": self.status.value,
            "primary_consultant": self.primary_consultant.to_dict(),
            "primary_diagnosis": self.primary_diagnosis,
            "secondary_diagnoses": list(self.secondary_diagnoses),
            "treatment_plans": [t.to_dict() for t in self.treatment_plans],
            "reconciled_medications": [m.to_dict() for m in self.reconciled_medications],
            "investigations": [i.to_dict() for i in self.investigations],
            "procedures": [p.to_dict() for p in self.procedures],
            "patient_goals": [g.to_dict() for g in self.patient_goals],
            "team_responsibilities": [r.to_dict() for r in self.team_responsibilities],
            "review_date": _iso(self.review_date),
            "escalation_criteria": list(self.escalation_criteria),
            "approvals": [a.to_dict() for a in self.approvals],
            "final_approval": self.final_approval.to_dict() if self.final_approval else None,
            "activated_at": _iso(self.activated_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
