"""Exception hierarchy for aiflow."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel

StateOperation = Literal["read", "write"]


class FieldError(BaseModel):
    """A single field-level problem reported by a ``ValidationError``."""

    field: str
    message: str


class AiflowError(Exception):
    """Base class for all aiflow errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.timestamp = datetime.now(timezone.utc)


class WorkflowError(AiflowError):
    """Raised when a workflow run cannot complete."""

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        step_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.workflow_id = workflow_id
        self.step_id = step_id


class ValidationError(AiflowError):
    """Bad input shape or a failed condition."""

    def __init__(
        self, message: str, errors: Optional[list[FieldError]] = None
    ) -> None:
        super().__init__(message)
        self.errors = errors or []


class StepExecutionError(WorkflowError):
    """A step's precondition was unmet or its action failed."""

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        step_id: Optional[str] = None,
        exit_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message, workflow_id=workflow_id, step_id=step_id)
        self.exit_code = exit_code
        self.stderr = stderr


class StateError(AiflowError):
    """Session state could not be read or written.

    A missing session is reported as a read failure with ``not_found`` set,
    not as a separate exception type.
    """

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        operation: Optional[StateOperation] = None,
        not_found: bool = False,
    ) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.operation = operation
        self.not_found = not_found


class TemplateError(AiflowError):
    """Malformed template syntax."""

    def __init__(
        self,
        message: str,
        template_path: Optional[str] = None,
        position: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.template_path = template_path
        self.position = position


class ConfigurationError(AiflowError):
    """Invalid configuration file or value."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        config_key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.config_path = config_path
        self.config_key = config_key


class AICommunicationError(AiflowError):
    """The AI provider failed to produce a response."""

    def __init__(self, message: str, code: str = "AI_ERROR") -> None:
        super().__init__(message)
        self.code = code


class AITimeoutError(AICommunicationError):
    def __init__(self, message: str = "AI request timed out") -> None:
        super().__init__(message, code="AI_TIMEOUT")


class AIResponseValidationError(AICommunicationError):
    def __init__(self, message: str = "AI response validation failed") -> None:
        super().__init__(message, code="AI_VALIDATION")


def format_error(error: BaseException) -> str:
    """Render ``error`` as a human readable, possibly multi-line message."""
    if isinstance(error, WorkflowError):
        parts = [f"{type(error).__name__}: {error}"]
        if error.workflow_id:
            parts.append(f"  Workflow: {error.workflow_id}")
        if error.step_id:
            parts.append(f"  Step: {error.step_id}")
        return "\n".join(parts)

    if isinstance(error, ValidationError) and error.errors:
        parts = [f"ValidationError: {error}"]
        for item in error.errors:
            parts.append(f"  - {item.field}: {item.message}")
        return "\n".join(parts)

    if isinstance(error, StateError) and error.session_id:
        return f"StateError: {error}\n  Session: {error.session_id}"

    return f"{type(error).__name__}: {error}"


__all__ = [
    "AICommunicationError",
    "AIResponseValidationError",
    "AITimeoutError",
    "AiflowError",
    "ConfigurationError",
    "FieldError",
    "StateError",
    "StateOperation",
    "StepExecutionError",
    "TemplateError",
    "ValidationError",
    "WorkflowError",
    "format_error",
]
