"""
Pydantic request/response models for the MDT API.

Request models convert themselves into domain dataclasses with
``to_domain()``; responses are the domain objects' ``to_dict()`` output.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from mdt_engine.core.careplan.base import (
    EvidenceLevel,
    Goal,
    GoalStatus,
    InvestigationRecommendation,
    MedicationAction,
    MedicationRecommendation,
    PriorityLevel,
    ProcedureRecommendation,
    Specialty,
    TeamMember,
    TreatmentRecommendation,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class TeamMemberModel(BaseModel):
    id: str
    name: str
    specialty: Specialty
    role: str = ""
    user_id: str = ""
    is_primary_consultant: bool = False
    contact_number: Optional[str] = None
    email: Optional[str] = None

    def to_domain(self) -> TeamMember:
        return TeamMember(**self.model_dump())


class TreatmentRecommendationModel(BaseModel):
    id: str = Field(default_factory=_new_id)
    category: str
    description: str
    priority: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    frequency: Optional[str] = None
    duration: Optional[str] = None
    evidence_level: Optional[EvidenceLevel] = None

    def to_domain(self) -> TreatmentRecommendation:
        return TreatmentRecommendation(**self.model_dump())


class MedicationRecommendationModel(BaseModel):
    id: str = Field(default_factory=_new_id)
    action: MedicationAction
    medication_name: str
    indication: str = ""
    rationale: str = ""
    dose: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    interactions: List[str] = Field(default_factory=list)
    monitoring: List[str] = Field(default_factory=list)
    special_instructions: Optional[str] = None

    def to_domain(self) -> MedicationRecommendation:
        return MedicationRecommendation(**self.model_dump())


class InvestigationModel(BaseModel):
    id: str = Field(default_factory=_new_id)
    test_name: str
    urgency: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    expected_date: Optional[datetime] = None

    def to_domain(self) -> InvestigationRecommendation:
        return InvestigationRecommendation(**self.model_dump())


class ProcedureModel(BaseModel):
    id: str = Field(default_factory=_new_id)
    procedure_name: str
    urgency: PriorityLevel = PriorityLevel.ROUTINE
    rationale: str = ""
    prerequisites: List[str] = Field(default_factory=list)
    expected_date: Optional[datetime] = None

    def to_domain(self) -> ProcedureRecommendation:
        return ProcedureRecommendation(**self.model_dump())


class GoalModel(BaseModel):
    id: str = Field(default_factory=_new_id)
    description: str
    measurable_outcome: str = ""
    target_date: Optional[datetime] = None
    status: GoalStatus = GoalStatus.NOT_STARTED

    def to_domain(self) -> Goal:
        return Goal(**self.model_dump())


# ---- Meetings ----

class MeetingCreateRequest(BaseModel):
    patient_id: str
    title: str = "MDT Meeting"
    scheduled_date: datetime
    duration: int = Field(default=60, gt=0)
    attendees: List[TeamMemberModel] = Field(default_factory=list)
    created_by: str = ""
    location: Optional[str] = None
    virtual: bool = False
    objectives: str = ""
    patient_summary: str = ""


class MeetingCompleteRequest(BaseModel):
    minutes: Optional[str] = None
    next_meeting_date: Optional[datetime] = None


class MeetingCancelRequest(BaseModel):
    reason: str


class DecisionRequest(BaseModel):
    topic: str
    decision: str
    rationale: str = ""
    responsible: List[str] = Field(default_factory=list)
    priority: PriorityLevel = PriorityLevel.ROUTINE
    deadline: Optional[datetime] = None


class InvitationRequest(BaseModel):
    specialist: TeamMemberModel
    invited_by: str
    message: Optional[str] = None


# ---- Specialty plans ----

class PlanContentModel(BaseModel):
    clinical_findings: str = ""
    diagnosis: List[str] = Field(default_factory=list)
    recommendations: List[TreatmentRecommendationModel] = Field(default_factory=list)
    medications: List[MedicationRecommendationModel] = Field(default_factory=list)
    investigations: List[InvestigationModel] = Field(default_factory=list)
    procedures: List[ProcedureModel] = Field(default_factory=list)
    short_term_goals: List[GoalModel] = Field(default_factory=list)
    long_term_goals: List[GoalModel] = Field(default_factory=list)
    special_notes: Optional[str] = None
    contraindications: List[str] = Field(default_factory=list)

    def content_kwargs(self) -> Dict[str, Any]:
        return {
            "clinical_findings": self.clinical_findings,
            "diagnosis": list(self.diagnosis),
            "recommendations": [r.to_domain() for r in self.recommendations],
            "medications": [m.to_domain() for m in self.medications],
            "investigations": [i.to_domain() for i in self.investigations],
            "procedures": [p.to_domain() for p in self.procedures],
            "short_term_goals": [g.to_domain() for g in self.short_term_goals],
            "long_term_goals": [g.to_domain() for g in self.long_term_goals],
            "special_notes": self.special_notes,
            "contraindications": list(self.contraindications),
        }


class PlanCreateRequest(PlanContentModel):
    patient_id: str
    specialty: Specialty
    submitted_by: TeamMemberModel
    meeting_id: Optional[str] = None
    submit: bool = False


class PlanActorRequest(BaseModel):
    actor: TeamMemberModel


class PlanResubmitRequest(PlanContentModel):
    actor: TeamMemberModel


class PlanApproveRequest(BaseModel):
    reviewer: TeamMemberModel
    expected_revision: Optional[int] = None


class PlanRejectRequest(BaseModel):
    reviewer: TeamMemberModel
    reason: str
    expected_revision: Optional[int] = None


class PlanRevisionRequest(BaseModel):
    notes: str
    reviewer: Optional[TeamMemberModel] = None
    expected_revision: Optional[int] = None


# ---- Care plans ----

class HarmonizeRequest(BaseModel):
    patient_id: str
    meeting_id: str
    primary_consultant: TeamMemberModel


class CarePlanApproveRequest(BaseModel):
    approver: TeamMemberModel
    comments: Optional[str] = None
    expected_revision: Optional[int] = None


class CarePlanActivateRequest(BaseModel):
    actor: TeamMemberModel
    expected_revision: Optional[int] = None


class ConflictResolveRequest(BaseModel):
    resolution: str
    resolved_by: TeamMemberModel
    expected_revision: Optional[int] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
