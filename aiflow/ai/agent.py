"""AI provider backed by pydantic-ai agents."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model

from ..constants import DEFAULT_AI_TIMEOUT
from ..errors import AICommunicationError, AIResponseValidationError, AITimeoutError
from .base import AIInterface, AIResponse, Usage

logger = logging.getLogger(__name__)


class PydanticAIInterface(AIInterface):
    """Send prompts through one ``pydantic_ai.Agent`` per workflow agent name.

    Args:
        model: Model name understood by pydantic-ai (``"openai:gpt-4o"``) or
            a ``Model`` instance.
        system_prompts: Optional system prompt per agent name.
        timeout: Seconds to wait for a single run.
    """

    name = "pydantic-ai"

    def __init__(
        self,
        model: str | Model,
        system_prompts: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_AI_TIMEOUT,
    ) -> None:
        super().__init__()
        self.model = model
        self.system_prompts = system_prompts or {}
        self.timeout = timeout
        self._agents: Dict[str, Agent] = {}

    def get_agent(self, agent_name: str) -> Agent:
        """Return the cached agent for ``agent_name``, creating it on first use."""
        agent = self._agents.get(agent_name)
        if agent is None:
            agent = Agent(
                self.model,
                name=agent_name,
                system_prompt=self.system_prompts.get(agent_name, ()),
            )
            self._agents[agent_name] = agent
        return agent

    async def send_prompt(
        self, prompt: str, agent: str, config: Optional[Dict[str, Any]] = None
    ) -> AIResponse:
        config = config or {}
        settings: Dict[str, Any] = {}
        if config.get("temperature") is not None:
            settings["temperature"] = config["temperature"]
        if config.get("max_tokens") is not None:
            settings["max_tokens"] = config["max_tokens"]
        timeout = config.get("timeout", self.timeout)

        runner = self.get_agent(agent)
        logger.debug(f"Sending prompt for agent {agent} ({len(prompt)} chars)")
        try:
            result = await asyncio.wait_for(
                runner.run(prompt, model_settings=settings or None), timeout
            )
        except asyncio.TimeoutError as exc:
            raise AITimeoutError() from exc
        except Exception as exc:
            raise AICommunicationError(
                f"AI provider error for agent {agent}: {exc}"
            ) from exc

        content = str(result.output)
        if not self.validate_response(content, prompt):
            raise AIResponseValidationError(f"Empty response from agent {agent}")

        run_usage = result.usage()
        usage = Usage(
            prompt_tokens=run_usage.input_tokens or 0,
            completion_tokens=run_usage.output_tokens or 0,
            total_tokens=run_usage.total_tokens or 0,
        )
        self._record_usage(usage)

        model_name = self.model if isinstance(self.model, str) else self.model.model_name
        return AIResponse(content=content, usage=usage, model=model_name, agent=agent)
