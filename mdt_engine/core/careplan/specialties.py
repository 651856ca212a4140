"""
Specialty catalogue: display names and default roles per specialty.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .base import Specialty


@dataclass(frozen=True)
class SpecialtyDefinition:
    name: str
    default_roles: Tuple[str, ...]


SPECIALTY_DEFINITIONS: Dict[Specialty, SpecialtyDefinition] = {
    Specialty.SURGERY: SpecialtyDefinition(
        "Surgery", ("Consultant Surgeon", "Registrar", "House Officer")),
    Specialty.ANAESTHESIA: SpecialtyDefinition(
        "Anaesthesia", ("Consultant Anaesthetist", "Registrar")),
    Specialty.MEDICINE: SpecialtyDefinition(
        "Internal Medicine", ("Consultant Physician", "Registrar", "House Officer")),
    Specialty.NURSING: SpecialtyDefinition(
        "Nursing", ("Matron", "Ward Manager", "Staff Nurse")),
    Specialty.PHARMACY: SpecialtyDefinition(
        "Pharmacy", ("Clinical Pharmacist", "Pharmacist")),
    Specialty.NUTRITION: SpecialtyDefinition(
        "Clinical Nutrition", ("Dietitian", "Nutritionist")),
    Specialty.PHYSIOTHERAPY: SpecialtyDefinition(
        "Physiotherapy", ("Physiotherapist", "Rehabilitation Specialist")),
    Specialty.PSYCHOLOGY: SpecialtyDefinition(
        "Psychology/Psychiatry", ("Clinical Psychologist", "Psychiatrist")),
    Specialty.SOCIAL_WORK: SpecialtyDefinition(
        "Social Work", ("Medical Social Worker",)),
    Specialty.PALLIATIVE_CARE: SpecialtyDefinition(
        "Palliative Care", ("Palliative Care Specialist", "Nurse Specialist")),
    Specialty.ONCOLOGY: SpecialtyDefinition(
        "Oncology", ("Oncologist", "Radiation Oncologist")),
    Specialty.RADIOLOGY: SpecialtyDefinition(
        "Radiology", ("Radiologist", "Interventional Radiologist")),
    Specialty.PATHOLOGY: SpecialtyDefinition(
        "Pathology", ("Pathologist", "Histopathologist")),
    Specialty.OCCUPATIONAL_THERAPY: SpecialtyDefinition(
        "Occupational Therapy", ("Occupational Therapist",)),
    Specialty.SPEECH_THERAPY: SpecialtyDefinition(
        "Speech & Language Therapy", ("Speech Therapist",)),
}


def display_name(specialty: Specialty) -> str:
    return SPECIALTY_DEFINITIONS[specialty].name
