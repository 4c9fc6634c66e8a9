"""Base interface for AI communication providers."""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..contracts import utcnow


class Usage(BaseModel):
    """Token accounting for one response or accumulated over several."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class AIResponse(BaseModel):
    content: str
    usage: Optional[Usage] = None
    model: Optional[str] = None
    agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class AIInterface(metaclass=abc.ABCMeta):
    """Abstract base for providers that turn a rendered prompt into text."""

    name: str = "ai"

    def __init__(self) -> None:
        self._usage: Optional[Usage] = None

    @abc.abstractmethod
    async def send_prompt(
        self, prompt: str, agent: str, config: Optional[Dict[str, Any]] = None
    ) -> AIResponse:
        """Send ``prompt`` on behalf of ``agent`` and return the reply.

        Raises:
            AICommunicationError: The provider failed to answer.
            AITimeoutError: No answer arrived within the configured timeout.
        """
        raise NotImplementedError

    def supports_streaming(self) -> bool:
        return False

    def get_usage(self) -> Optional[Usage]:
        """Usage accumulated since construction or the last reset."""
        return self._usage

    def reset_usage(self) -> None:
        self._usage = None

    def validate_response(self, response: str, prompt: str) -> bool:
        """Return ``True`` if ``response`` looks like a usable answer."""
        return bool(response and response.strip())

    def _record_usage(self, usage: Usage) -> None:
        self._usage = usage if self._usage is None else self._usage + usage
