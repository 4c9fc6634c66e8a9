"""Persistence layer for aiflow sessions."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from ..config import AiflowConfig, load_config
from ..constants import ENV_HOME
from .models import CleanupFailure, CleanupResult, SessionInfo, WorkflowSessionState
from .repository import SessionStore
from .state_manager import StateManager


def get_state_manager(
    base_dir: str | Path | None = None, config: Optional[AiflowConfig] = None
) -> StateManager:
    """Factory function to obtain a state manager.

    The state directory is taken from ``base_dir`` when given, then from
    ``$AIFLOW_HOME/state``, then from the loaded configuration.
    """

    if base_dir is None:
        home = os.getenv(ENV_HOME)
        if home:
            base_dir = Path(home) / "state"
        else:
            base_dir = (config or load_config()).state_dir
    return StateManager(base_dir)


__all__ = [
    "CleanupFailure",
    "CleanupResult",
    "SessionInfo",
    "SessionStore",
    "StateManager",
    "WorkflowSessionState",
    "get_state_manager",
]
