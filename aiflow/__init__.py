"""aiflow: resumable AI workflow orchestration."""

__version__ = "0.1.0"

from .contracts import Context, Step, StepResult, Workflow, WorkflowState
from .engine import EventBus, StepExecutor, WorkflowEngine, create_engine
from .expressions import evaluate
from .loader import WorkflowLoader
from .persistence import StateManager, get_state_manager
from .templates import TemplateEngine

__all__ = [
    "Context",
    "EventBus",
    "StateManager",
    "Step",
    "StepExecutor",
    "StepResult",
    "TemplateEngine",
    "Workflow",
    "WorkflowEngine",
    "WorkflowLoader",
    "WorkflowState",
    "create_engine",
    "evaluate",
    "get_state_manager",
]
