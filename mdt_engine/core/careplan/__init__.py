"""
Care Plan Layer

Turns independent specialty plans into one harmonized, approved care plan.

Usage:
    from mdt_engine.core.careplan import HarmonizationEngine, approve_care_plan

    engine = HarmonizationEngine()
    care_plan = engine.harmonize(plans, primary_consultant, patient_id, meeting_id)
    care_plan = approve_care_plan(care_plan, reviewer)
"""
from .base import (
    CarePlanState,
    ContraindicationCheck,
    HarmonizedCarePlan,
    MDTMeeting,
    MedicationAction,
    PlanApprovalState,
    PriorityLevel,
    Specialty,
    SpecialtyTreatmentPlan,
    TeamMember,
)
from .harmonization import HarmonizationEngine, harmonize_treatment_plans, calculate_team_workload
from .interactions import InteractionRuleProvider, StaticInteractionRuleProvider
from .meetings import MeetingCoordinator, generate_meeting_summary
from .registry import PlanRegistry, create_specialty_plan
from .repository import CarePlanRepository
from .workflow import (
    activate_care_plan,
    approve_care_plan,
    approve_specialty_plan,
    get_pending_approvals,
    reject_specialty_plan,
    request_revision,
    resolve_conflict,
)

__all__ = [
    "CarePlanState",
    "ContraindicationCheck",
    "HarmonizedCarePlan",
    "MDTMeeting",
    "MedicationAction",
    "PlanApprovalState",
    "PriorityLevel",
    "Specialty",
    "SpecialtyTreatmentPlan",
    "TeamMember",
    "HarmonizationEngine",
    "harmonize_treatment_plans",
    "calculate_team_workload",
    "InteractionRuleProvider",
    "StaticInteractionRuleProvider",
    "MeetingCoordinator",
    "generate_meeting_summary",
    "PlanRegistry",
    "create_specialty_plan",
    "CarePlanRepository",
    "activate_care_plan",
    "approve_care_plan",
    "approve_specialty_plan",
    "get_pending_approvals",
    "reject_specialty_plan",
    "request_revision",
    "resolve_conflict",
]
