"""
Service layer: orchestration over the care plan domain.
"""
from .mdt_service import MDTService

__all__ = ["MDTService"]
