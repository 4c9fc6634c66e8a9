"""Subprocess execution for script steps."""

from __future__ import annotations

import asyncio
from typing import Protocol

from pydantic import BaseModel


class CommandResult(BaseModel):
    stdout: str
    stderr: str
    exit_code: int


class CommandRunner(Protocol):
    async def run(self, command: str) -> CommandResult:
        """Run ``command`` and capture its output."""


class ShellRunner:
    """Run commands through the system shell.

    Raises ``OSError`` when the process cannot be spawned.
    """

    def __init__(self, cwd: str | None = None, env: dict[str, str] | None = None) -> None:
        self.cwd = cwd
        self.env = env

    async def run(self, command: str) -> CommandResult:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=self.env,
        )
        stdout, stderr = await process.communicate()
        return CommandResult(
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
