"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging
from .exceptions import (
    MDTEngineError,
    PlanValidationError,
    InsufficientInputError,
    AuthorizationError,
    VersionConflictError,
    WorkflowStateError,
    NotFoundError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "MDTEngineError",
    "PlanValidationError",
    "InsufficientInputError",
    "AuthorizationError",
    "VersionConflictError",
    "WorkflowStateError",
    "NotFoundError",
]
