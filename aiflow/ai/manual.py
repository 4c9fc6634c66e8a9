"""Interactive copy-paste provider.

The prompt is printed for the user to paste into an AI tool of their choice,
and the reply is read back from standard input. Input ends with two
consecutive blank lines after some content, or at end of file.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any, Dict, List, Optional, TextIO

import typer

from ..constants import DEFAULT_AI_TIMEOUT
from ..errors import AIResponseValidationError, AITimeoutError
from .base import AIInterface, AIResponse

MIN_RESPONSE_LENGTH = 10
PLACEHOLDER_MARKERS = (
    "[insert",
    "[placeholder",
    "[your response",
    "...",
    "lorem ipsum",
    "todo:",
    "fixme:",
)


class ManualInterface(AIInterface):
    name = "Manual Copy-Paste Interface"

    def __init__(
        self,
        timeout: float = DEFAULT_AI_TIMEOUT,
        input_stream: Optional[TextIO] = None,
    ) -> None:
        super().__init__()
        self.timeout = timeout
        self._input = input_stream

    async def send_prompt(
        self, prompt: str, agent: str, config: Optional[Dict[str, Any]] = None
    ) -> AIResponse:
        config = config or {}
        self._display_prompt(prompt, agent, config)

        timeout = config.get("timeout", self.timeout)
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._collect_response), timeout
            )
        except asyncio.TimeoutError as exc:
            raise AITimeoutError("Response input timed out") from exc

        if not self.validate_response(response, prompt):
            raise AIResponseValidationError(
                f"Response validation failed for agent {agent}"
            )

        typer.secho("\nResponse received successfully!", fg=typer.colors.GREEN, bold=True)
        typer.secho(f"Response length: {len(response)} characters\n", dim=True)
        return AIResponse(
            content=response,
            agent=agent,
            model=config.get("model") or "manual-input",
        )

    def validate_response(self, response: str, prompt: str) -> bool:
        """Reject empty, very short, or obviously unfinished replies."""
        text = (response or "").strip()
        if len(text) < MIN_RESPONSE_LENGTH:
            return False
        lowered = text.lower()
        return not any(marker in lowered for marker in PLACEHOLDER_MARKERS)

    def _display_prompt(self, prompt: str, agent: str, config: Dict[str, Any]) -> None:
        border = "-" * 60
        typer.secho(f"\nAI Agent: {agent}", fg=typer.colors.CYAN, bold=True)
        if config.get("model"):
            typer.secho(f"Model: {config['model']}", dim=True)
        if config.get("temperature") is not None:
            typer.secho(f"Temperature: {config['temperature']}", dim=True)

        typer.secho("\nCopy this prompt to your AI tool:", fg=typer.colors.YELLOW, bold=True)
        typer.secho(border, fg=typer.colors.YELLOW)
        typer.echo(prompt)
        typer.secho(border, fg=typer.colors.YELLOW)
        typer.secho(
            "\nPaste the AI response and press Enter twice when done:",
            fg=typer.colors.GREEN,
            bold=True,
        )

    def _collect_response(self) -> str:
        stream = self._input or sys.stdin
        lines: List[str] = []
        blank_count = 0
        for raw in stream:
            line = raw.rstrip("\n")
            if line.strip():
                blank_count = 0
                lines.append(line)
                continue
            blank_count += 1
            if blank_count >= 2 and lines:
                break
        return "\n".join(lines).strip()
