from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from .constants import DEFAULT_AI_TIMEOUT, DEFAULT_CONFIG_FILE, DEFAULT_STATE_DIR, ENV_CONFIG, ENV_HOME
from .errors import ConfigurationError


class AIConfig(BaseModel):
    """Settings for the AI communication provider."""

    backend: Literal["placeholder", "manual", "pydantic-ai"] = "placeholder"
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: float = DEFAULT_AI_TIMEOUT
    system_prompts: Dict[str, str] = Field(default_factory=dict)

    def request_options(self) -> Dict[str, Any]:
        """Per-request options passed along with each prompt."""
        return self.model_dump(
            include={"model", "temperature", "max_tokens", "timeout"},
            exclude_none=True,
        )


class AiflowConfig(BaseModel):
    """Top-level configuration model."""

    state_dir: Path = DEFAULT_STATE_DIR
    workflow_dirs: List[Path] = Field(default_factory=list)
    log_level: str = "INFO"
    ai: AIConfig = AIConfig()


def load_config(path: Optional[str] = None) -> AiflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to the AIFLOW_CONFIG
            env variable or '.aiflow/config.yaml' in the current directory.
    """

    config_path = path or os.getenv(ENV_CONFIG) or str(DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            config = AiflowConfig(**data)
        except (yaml.YAMLError, SchemaError, TypeError) as exc:
            raise ConfigurationError(
                f"Invalid configuration in {config_path}: {exc}",
                config_path=config_path,
            ) from exc
    else:
        config = AiflowConfig()

    home = os.getenv(ENV_HOME)
    if home:
        config.state_dir = Path(home) / "state"
    return config
