"""
Custom Exception Hierarchy

Provides specific exception types for the failure modes of plan creation,
harmonization and approval, each carrying structured error information.
"""
from typing import Optional, Dict, Any


class MDTEngineError(Exception):
    """Base exception for all MDT engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class PlanValidationError(MDTEngineError):
    """Malformed input rejected at the plan or meeting creation boundary."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )
        self.field = field


class InsufficientInputError(MDTEngineError):
    """Harmonization was asked to merge fewer plans than it needs."""

    def __init__(
        self,
        message: str,
        received: int = 0,
        required: int = 2,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INSUFFICIENT_INPUT",
            details={"received": received, "required": required, **(details or {})}
        )
        self.received = received
        self.required = required


class AuthorizationError(MDTEngineError):
    """The acting team member may not perform this transition."""

    def __init__(
        self,
        message: str,
        actor_id: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="AUTHORIZATION_ERROR",
            details={"actor_id": actor_id, **(details or {})}
        )
        self.actor_id = actor_id


class VersionConflictError(MDTEngineError):
    """A write was attempted against a stale snapshot."""

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="VERSION_CONFLICT",
            details={"expected": expected, "actual": actual, **(details or {})}
        )
        self.expected = expected
        self.actual = actual


class WorkflowStateError(MDTEngineError):
    """A transition is not defined from the entity's current state."""

    def __init__(
        self,
        message: str,
        current_state: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INVALID_TRANSITION",
            details={"current_state": current_state, **(details or {})}
        )
        self.current_state = current_state


class NotFoundError(MDTEngineError):
    """A meeting, plan or invitation lookup found nothing."""

    def __init__(
        self,
        message: str,
        resource: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, **(details or {})}
        )
        self.resource = resource
