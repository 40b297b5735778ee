# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Workflow exceptions.

Every failure a caller can correct or retry is raised as a subclass of
WorkflowException, which carries the HTTP status and error type used by the
error handler middleware.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class WorkflowException(Exception):
    """Base class for workflow exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    def details(self) -> Dict[str, Any]:
        """Extra fields exposed in the error response."""
        return {}


class ValidationException(WorkflowException):
    """Exception for missing or malformed input."""

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None):
        super().__init__(message, 400, "validation-error")
        self.validation_errors = validation_errors or []

    def details(self) -> Dict[str, Any]:
        return {"validation_errors": self.validation_errors}


class ForbiddenException(WorkflowException):
    """Exception for callers acting on records their organization does not own."""

    def __init__(self, message: str):
        super().__init__(message, 403, "insufficient-permissions")


class NotFoundException(WorkflowException):
    """Exception for unresolved entity IDs."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class InvalidStateException(WorkflowException):
    """Exception for actions not valid from the record's current status."""

    def __init__(self, message: str, current_status: Optional[str] = None,
                 error_type: str = "invalid-state"):
        super().__init__(message, 409, error_type)
        self.current_status = current_status

    def details(self) -> Dict[str, Any]:
        return {"current_status": self.current_status}


class InvalidTransitionException(InvalidStateException):
    """Exception for a status change the state machine does not allow."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message, current_status, "invalid-transition")


class ConflictException(WorkflowException):
    """Exception for concurrent modification or duplicate records."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class SlotExceededException(WorkflowException):
    """Exception raised when a sponsor has no free match request slots."""

    def __init__(self, message: str, used: int, limit: int):
        super().__init__(message, 429, "slot-exceeded")
        self.used = used
        self.limit = limit

    def details(self) -> Dict[str, Any]:
        return {"slots": {"used": self.used, "max": self.limit, "available": max(0, self.limit - self.used)}}


class CooldownException(WorkflowException):
    """Exception raised while a declined sponsor/target pair is cooling down."""

    def __init__(self, message: str, cooldown_ends_at: datetime):
        super().__init__(message, 429, "cooldown-active")
        self.cooldown_ends_at = cooldown_ends_at

    def details(self) -> Dict[str, Any]:
        return {"cooldown_ends_at": self.cooldown_ends_at.isoformat()}


class NotRequiredException(WorkflowException):
    """Exception for CDE acceptance on a commitment with no CDE party."""

    def __init__(self, message: str):
        super().__init__(message, 400, "not-required")
