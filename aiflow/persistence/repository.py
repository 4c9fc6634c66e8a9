"""Storage abstraction for session state persistence."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional, Protocol, Sequence

from ..contracts import StepExecution, WorkflowStatus
from .models import CleanupResult, SessionInfo, WorkflowSessionState


class SessionStore(Protocol):
    """Protocol for session persistence backends used by the engine."""

    async def initialize(self) -> None:
        """Prepare the backend for use."""

    async def create_session(self, workflow_id: str, inputs: dict[str, Any]) -> str:
        """Persist a new running session and return its id."""

    async def save_session(self, state: WorkflowSessionState) -> WorkflowSessionState:
        """Persist ``state`` under its current status and return what was written."""

    async def load_session(
        self, session_id: str, expected_status: Optional[WorkflowStatus] = None
    ) -> WorkflowSessionState:
        """Load a session, raising ``StateError`` if it does not exist."""

    async def update_session_status(
        self, session_id: str, new_status: WorkflowStatus
    ) -> None:
        """Move a session to ``new_status``."""

    async def update_context(self, session_id: str, patch: dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the session context."""

    async def add_step_execution(
        self, session_id: str, execution: StepExecution
    ) -> None:
        """Append a step record and advance the step index."""

    async def list_sessions(
        self, status: Optional[WorkflowStatus] = None
    ) -> list[SessionInfo]:
        """Return session summaries, most recently updated first."""

    async def delete_session(self, session_id: str) -> None:
        """Remove a session."""

    async def cleanup_sessions(
        self,
        max_age: Optional[timedelta] = None,
        statuses: Optional[Sequence[WorkflowStatus]] = None,
        dry_run: bool = False,
    ) -> CleanupResult:
        """Delete old sessions in the given statuses."""
