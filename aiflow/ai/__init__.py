"""AI communication providers and factory."""

from __future__ import annotations

from typing import Optional

from ..config import AiflowConfig, load_config
from ..errors import ConfigurationError
from .base import AIInterface, AIResponse, Usage
from .manual import ManualInterface


def get_ai_interface(
    backend: Optional[str] = None, config: Optional[AiflowConfig] = None
) -> Optional[AIInterface]:
    """Factory function to get the configured AI provider.

    Returns ``None`` for the ``placeholder`` backend, in which case ai-prompt
    steps produce a placeholder response.
    """

    config = config or load_config()
    backend = (backend or config.ai.backend).lower()

    if backend == "placeholder":
        return None
    elif backend == "manual":
        return ManualInterface(timeout=config.ai.timeout)
    elif backend == "pydantic-ai":
        from .agent import PydanticAIInterface

        if not config.ai.model:
            raise ConfigurationError(
                "The pydantic-ai backend requires ai.model to be set",
                config_key="ai.model",
            )
        return PydanticAIInterface(
            model=config.ai.model,
            system_prompts=config.ai.system_prompts,
            timeout=config.ai.timeout,
        )
    else:
        raise ConfigurationError(
            f"Unsupported AI backend: {backend}", config_key="ai.backend"
        )


__all__ = ["AIInterface", "AIResponse", "ManualInterface", "Usage", "get_ai_interface"]
