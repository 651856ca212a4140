"""
MDT Engine — Configuration
==========================
Centralised settings for review periods, logging and the drug-interaction
rule table. Loads overrides from the project-level .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# ── Paths ───────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
PACKAGE_DIR = Path(__file__).resolve().parent

# ── Load .env ───────────────────────────────────────────────────────────
load_dotenv(PROJECT_ROOT / ".env")

# ── Logging ─────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("MDT_LOG_LEVEL", "INFO")
LOG_FILE: str = os.getenv("MDT_LOG_FILE", "")

# ── Harmonization defaults ──────────────────────────────────────────────
REVIEW_PERIOD_DAYS: int = int(os.getenv("MDT_REVIEW_PERIOD_DAYS", "7"))
DEFAULT_PROCEDURE_MINUTES: int = int(os.getenv("MDT_DEFAULT_PROCEDURE_MINUTES", "60"))
DEFAULT_REVIEW_SCHEDULE = "Weekly"
DEFAULT_ESCALATION_CONTACT = "Contact via hospital directory"
DEFAULT_ROUTE = "oral"
MIN_PLANS_TO_HARMONIZE = 2

ESCALATION_CRITERIA = (
    "Clinical deterioration",
    "New critical findings",
    "Treatment complications",
    "Patient/family concerns",
)

# Specialties whose procedures are assumed to need an anaesthetist
ANAESTHESIA_SPECIALTIES = ("surgery", "radiology")

# ── Interaction rules ───────────────────────────────────────────────────
# Optional JSON file replacing the built-in table. Structure:
# {"warfarin": [{"match_patterns": ["aspirin"], "severity": "major",
#                "management": "..."}]}
INTERACTION_RULES_FILE: str = os.getenv("MDT_INTERACTION_RULES_FILE", "")

# ── Meetings ────────────────────────────────────────────────────────────
DEFAULT_MEETING_MINUTES = 60
VIRTUAL_MEETING_BASE_URL: str = os.getenv("MDT_VIRTUAL_MEETING_URL", "https://meet.example.org/")
