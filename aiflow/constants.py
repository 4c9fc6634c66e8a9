"""Shared constants for aiflow."""

from __future__ import annotations

from pathlib import Path

CONFIG_DIR = ".aiflow"
GLOBAL_CONFIG_DIR = Path.home() / CONFIG_DIR
DEFAULT_WORKFLOW_DIR = "workflows"
DEFAULT_STATE_DIR = Path(CONFIG_DIR) / "state"
DEFAULT_CONFIG_FILE = Path(CONFIG_DIR) / "config.yaml"

ENV_HOME = "AIFLOW_HOME"
ENV_CONFIG = "AIFLOW_CONFIG"
ENV_DEBUG = "AIFLOW_DEBUG"

# Order matters: sessions without a status hint are looked up in this order.
SESSION_STATUSES = ("running", "paused", "completed", "failed")

DEFAULT_BACKOFF_MS = 1000
DEFAULT_CLEANUP_MAX_AGE_DAYS = 30
DEFAULT_CLEANUP_STATUSES = ("completed", "failed")
DEFAULT_AI_TIMEOUT = 300.0

AI_PLACEHOLDER_RESPONSE = "Placeholder AI response - no AI interface configured"

EXIT_GENERAL_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_WORKFLOW_ERROR = 3
EXIT_INTEGRATION_ERROR = 4
