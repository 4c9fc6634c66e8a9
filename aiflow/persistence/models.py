"""Data models for persisted session state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from ..contracts import Context, StepExecution, WorkflowState, WorkflowStatus, utcnow


class WorkflowSessionState(BaseModel):
    """Persisted unit: one session of one workflow."""

    session_id: str
    workflow_id: str
    status: WorkflowStatus = "running"
    inputs: Dict[str, Any] = Field(default_factory=dict)
    context: Context = Field(default_factory=Context)
    outputs: Dict[str, Any] = Field(default_factory=dict)
    step_executions: List[StepExecution] = Field(default_factory=list)
    current_step_index: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_workflow_state(self) -> WorkflowState:
        return WorkflowState(
            session_id=self.session_id,
            workflow_id=self.workflow_id,
            started_at=self.created_at,
            updated_at=self.updated_at,
            current_step_index=self.current_step_index,
            status=self.status,
            context=self.context,
            step_history=self.step_executions,
            outputs=self.outputs,
        )


class SessionInfo(BaseModel):
    """Lightweight summary used for listings."""

    session_id: str
    workflow_id: str
    status: WorkflowStatus
    created_at: datetime
    updated_at: datetime
    current_step_index: int = 0
    total_steps: int = 0


class CleanupFailure(BaseModel):
    session_id: str
    error: str


class CleanupResult(BaseModel):
    deleted: List[str] = Field(default_factory=list)
    errors: List[CleanupFailure] = Field(default_factory=list)
