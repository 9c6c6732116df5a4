"""
Shared error handling for the RBAC decision core.
"""

from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for RBAC components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(AccessLayerException):
    """Invalid cache, size or service parameters."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class HierarchyError(AccessLayerException):
    """Cycle in the role graph, or hierarchy resolution failed."""

    def __init__(
        self,
        message: str = "Role hierarchy error",
        cycle: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if cycle:
            details.setdefault("cycle", list(cycle))
        self.cycle = list(cycle) if cycle else []
        super().__init__("HIERARCHY_ERROR", message, details)


class InvalidRoleError(AccessLayerException):
    """Role references a parent that does not exist."""

    def __init__(self, message: str = "Invalid role", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ROLE", message, details)


class AccessDeniedError(AccessLayerException):
    """Raised by callers that turn a negative decision into an error."""

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("ACCESS_DENIED", message, details)
