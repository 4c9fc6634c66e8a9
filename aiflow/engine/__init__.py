"""Workflow execution: step executor, engine and lifecycle events."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..ai import get_ai_interface
from ..config import AiflowConfig, load_config
from ..loader import WorkflowLoader
from ..persistence import get_state_manager
from .events import (
    EventBus,
    StepCompleted,
    StepFailed,
    StepStarted,
    WorkflowCompleted,
    WorkflowEvent,
    WorkflowFailed,
    WorkflowPaused,
    WorkflowResumed,
    WorkflowStarted,
)
from .step_executor import StepExecutor
from .workflow_engine import WorkflowEngine, WorkflowSource


def create_engine(
    config: Optional[AiflowConfig] = None,
    project_root: str | Path | None = None,
    events: Optional[EventBus] = None,
) -> WorkflowEngine:
    """Build a ``WorkflowEngine`` wired from configuration."""

    config = config or load_config()
    executor = StepExecutor(
        ai_interface=get_ai_interface(config=config), ai_config=config.ai
    )
    loader = WorkflowLoader(project_root, search_dirs=config.workflow_dirs)
    return WorkflowEngine(
        state_manager=get_state_manager(config=config),
        step_executor=executor,
        workflow_loader=loader,
        events=events,
    )


__all__ = [
    "EventBus",
    "StepCompleted",
    "StepExecutor",
    "StepFailed",
    "StepStarted",
    "WorkflowCompleted",
    "WorkflowEngine",
    "WorkflowEvent",
    "WorkflowFailed",
    "WorkflowPaused",
    "WorkflowResumed",
    "WorkflowSource",
    "WorkflowStarted",
    "create_engine",
]
