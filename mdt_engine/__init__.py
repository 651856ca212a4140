"""
MDT Care Plan Engine

Harmonizes per-specialty treatment plans into one conflict-annotated care
plan and drives its two-tier approval workflow.
"""

__version__ = "1.0.0"
