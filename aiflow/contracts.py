"""Core data contracts for aiflow workflows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

WorkflowStatus = Literal["running", "paused", "completed", "failed"]
StepStatus = Literal["success", "failed", "skipped", "pending"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorPattern(str, Enum):
    """Error classifications a retry policy can opt into."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    AUTHENTICATION_ERROR = "authentication_error"
    VALIDATION_ERROR = "validation_error"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    TEMPORARY_FAILURE = "temporary_failure"


class _AliasedModel(BaseModel):
    """Accepts both camelCase keys from YAML and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True)


class RetryPolicy(_AliasedModel):
    """Per-step retry configuration."""

    max_attempts: int = Field(ge=1, alias="maxAttempts")
    backoff_ms: Optional[int] = Field(default=None, ge=0, alias="backoffMs")
    retry_on: Optional[List[ErrorPattern]] = Field(default=None, alias="retryOn")


class OutputMapping(BaseModel):
    name: str
    type: str


class InputDefinition(BaseModel):
    name: str
    type: Literal["string", "number", "boolean", "object", "array"]
    description: Optional[str] = None
    required: Optional[bool] = None
    default: Any = None


class OutputDefinition(BaseModel):
    name: str
    type: Literal[
        "string",
        "number",
        "boolean",
        "object",
        "array",
        "structured",
        "markdown",
        "json",
    ]
    description: Optional[str] = None


class _StepBase(_AliasedModel):
    id: str
    retry_policy: Optional[RetryPolicy] = Field(default=None, alias="retryPolicy")
    outputs: Optional[List[OutputMapping]] = None


class AIPromptStep(_StepBase):
    """Render a prompt and hand it to an AI agent."""

    type: Literal["ai-prompt"] = "ai-prompt"
    agent: Optional[str] = None
    template: Optional[str] = None


class ScriptStep(_StepBase):
    """Run a rendered shell command."""

    type: Literal["script"] = "script"
    command: Optional[str] = None
    expected_exit_code: int = Field(default=0, alias="expectedExitCode")


class ValidationStep(_StepBase):
    """Fail the workflow unless ``condition`` holds."""

    type: Literal["validation"] = "validation"
    condition: Optional[str] = None


class LoopStep(_StepBase):
    """Run child steps once per element of the list at ``items``."""

    type: Literal["loop"] = "loop"
    items: Optional[str] = None
    steps: Optional[List[Step]] = None


class ConditionalStep(_StepBase):
    """Run child steps only when ``condition`` holds."""

    type: Literal["conditional"] = "conditional"
    condition: Optional[str] = None
    steps: Optional[List[Step]] = None


Step = Annotated[
    Union[AIPromptStep, ScriptStep, ValidationStep, LoopStep, ConditionalStep],
    Field(discriminator="type"),
]

LoopStep.model_rebuild()
ConditionalStep.model_rebuild()


class Workflow(BaseModel):
    """A validated workflow definition. Never mutated by the engine."""

    id: str
    name: str
    description: str = ""
    version: str = "1.0.0"
    inputs: List[InputDefinition] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    outputs: List[OutputDefinition] = Field(default_factory=list)


class Context(BaseModel):
    """Variable bag threaded through a session's steps."""

    inputs: Dict[str, Any] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)
    outputs: Dict[str, Any] = Field(default_factory=dict)

    def scope(self) -> Dict[str, Any]:
        """Names visible to templates and conditions; variables shadow inputs."""
        return {**self.inputs, **self.variables}


class StepExecution(BaseModel):
    """History record of one step run."""

    step_id: str
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    status: StepStatus = "pending"
    inputs: Any = None
    outputs: Any = None
    error: Optional[str] = None
    retry_count: Optional[int] = None


class StepResult(BaseModel):
    """Outcome of a successful step."""

    outputs: Dict[str, Any] = Field(default_factory=dict)
    should_continue: bool = True
    next_step_index: Optional[int] = None
    retry_count: int = 0


class WorkflowState(BaseModel):
    """Public view of a session."""

    session_id: str
    workflow_id: str
    started_at: datetime
    updated_at: datetime
    current_step_index: int
    status: WorkflowStatus
    context: Context
    step_history: List[StepExecution] = Field(default_factory=list)
    outputs: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AIPromptStep",
    "ConditionalStep",
    "Context",
    "ErrorPattern",
    "InputDefinition",
    "LoopStep",
    "OutputDefinition",
    "OutputMapping",
    "RetryPolicy",
    "ScriptStep",
    "Step",
    "StepExecution",
    "StepResult",
    "StepStatus",
    "ValidationStep",
    "Workflow",
    "WorkflowState",
    "WorkflowStatus",
    "utcnow",
]
