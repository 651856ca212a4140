"""
Pytest Configuration and Fixtures

Shared fixtures for MDT care plan tests.
"""
import pytest
from datetime import datetime, timezone
from pathlib import Path
import sys

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mdt_engine.core.careplan.base import (
    MedicationAction,
    MedicationRecommendation,
    PlanStatus,
    PriorityLevel,
    Specialty,
    TeamMember,
    TreatmentRecommendation,
)
from mdt_engine.core.careplan.registry import create_specialty_plan

PATIENT_ID = "PAT-001"
MEETING_ID = "MTG-001"


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed clock reading for deterministic merges."""
    return datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def surgeon() -> TeamMember:
    return TeamMember(id="dr-surgeon", name="Dr. Okafor", specialty=Specialty.SURGERY,
                      role="Consultant Surgeon")


@pytest.fixture
def second_surgeon() -> TeamMember:
    return TeamMember(id="dr-registrar", name="Dr. Lind", specialty=Specialty.SURGERY,
                      role="Registrar")


@pytest.fixture
def nurse() -> TeamMember:
    return TeamMember(id="rn-nurse", name="Sister Patel", specialty=Specialty.NURSING,
                      role="Ward Manager", contact_number="ext 4410")


@pytest.fixture
def physician() -> TeamMember:
    return TeamMember(id="dr-physician", name="Dr. Haddad", specialty=Specialty.MEDICINE,
                      role="Consultant Physician")


@pytest.fixture
def pharmacist() -> TeamMember:
    return TeamMember(id="ph-pharmacist", name="Mr. Chen", specialty=Specialty.PHARMACY,
                      role="Clinical Pharmacist")


@pytest.fixture
def primary_consultant() -> TeamMember:
    return TeamMember(id="dr-primary", name="Dr. Moreau", specialty=Specialty.MEDICINE,
                      role="Consultant Physician", is_primary_consultant=True)


@pytest.fixture
def make_plan(fixed_now):
    """Factory for submitted specialty plans with sensible defaults."""
    def _make(member: TeamMember, *, patient_id: str = PATIENT_ID, meeting_id: str = MEETING_ID,
              status: PlanStatus = PlanStatus.SUBMITTED, **content):
        plan = create_specialty_plan(
            patient_id, member.specialty, member,
            meeting_id=meeting_id, now=fixed_now, **content,
        )
        plan.status = status
        return plan
    return _make


@pytest.fixture
def wound_care_plans(make_plan, surgeon, nurse):
    """Surgery (BD) and nursing (TDS) disagree on dressing frequency."""
    surgery = make_plan(
        surgeon,
        diagnosis=["Cellulitis"],
        recommendations=[TreatmentRecommendation(
            id="rec-s1", category="Wound Care", description="Wet-to-dry dressing",
            frequency="BD", priority=PriorityLevel.URGENT,
        )],
    )
    nursing = make_plan(
        nurse,
        diagnosis=["cellulitis", "Diabetes"],
        recommendations=[TreatmentRecommendation(
            id="rec-n1", category="wound care", description="Hydrocolloid dressing",
            frequency="TDS",
        )],
    )
    return [surgery, nursing]


@pytest.fixture
def metformin_plans(make_plan, physician, pharmacist):
    """Medicine continues metformin, pharmacy discontinues it."""
    medicine = make_plan(
        physician,
        diagnosis=["Type 2 diabetes"],
        medications=[MedicationRecommendation(
            id="med-m1", action=MedicationAction.CONTINUE, medication_name="Metformin",
            dose="500mg", route="oral", frequency="BD", indication="Glycaemic control",
        )],
    )
    pharmacy = make_plan(
        pharmacist,
        medications=[MedicationRecommendation(
            id="med-p1", action=MedicationAction.DISCONTINUE, medication_name="metformin",
            indication="eGFR below 30", monitoring=["Renal function"],
        )],
    )
    return [medicine, pharmacy]
