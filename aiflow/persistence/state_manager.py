"""File-based session state persistence.

Sessions are stored as one JSON document per session under a directory per
status::

    <base_dir>/running/<session_id>.json
    <base_dir>/paused/<session_id>.json
    <base_dir>/completed/<session_id>.json
    <base_dir>/failed/<session_id>.json

Every write goes to ``<session_id>.json.tmp`` first and is then renamed over
the final path, so a crash never leaves a half-written ``.json`` behind.
Moving a session to another status writes the new copy before removing the
old one; a crash in between leaves two copies, and loads without a status
hint resolve that by probing the directories in a fixed order.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as SchemaError

from ..constants import (
    DEFAULT_CLEANUP_MAX_AGE_DAYS,
    DEFAULT_CLEANUP_STATUSES,
    DEFAULT_STATE_DIR,
    SESSION_STATUSES,
)
from ..contracts import Context, StepExecution, WorkflowStatus, utcnow
from ..errors import StateError
from .models import CleanupFailure, CleanupResult, SessionInfo, WorkflowSessionState


class StateManager:
    """Persist workflow sessions as JSON files partitioned by status."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir else Path.cwd() / DEFAULT_STATE_DIR
        self.status_dirs: Dict[str, Path] = {
            status: self.base_dir / status for status in SESSION_STATUSES
        }
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Paths
    def session_path(self, session_id: str, status: WorkflowStatus) -> Path:
        return self.status_dirs[status] / f"{session_id}.json"

    def _candidate_paths(self, session_id: str) -> List[Path]:
        return [self.session_path(session_id, status) for status in SESSION_STATUSES]

    # ------------------------------------------------------------------
    # Blocking helpers, run through ``asyncio.to_thread``
    def _make_dirs(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for directory in self.status_dirs.values():
            directory.mkdir(parents=True, exist_ok=True)

    def _write_atomic(self, path: Path, payload: str) -> None:
        temp_path = path.with_name(f"{path.name}.tmp")
        try:
            temp_path.write_text(payload, encoding="utf-8")
            os.replace(temp_path, path)
        except BaseException:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                self._logger.warning(f"Could not remove temp file {temp_path}: {exc}")
            raise

    def _read_first(self, paths: Sequence[Path]) -> str:
        for path in paths:
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
        raise FileNotFoundError(paths[-1])

    def _find_existing(self, session_id: str) -> Path:
        for path in self._candidate_paths(session_id):
            if path.exists():
                return path
        raise FileNotFoundError(session_id)

    def _scan(self, statuses: Sequence[str]) -> List[SessionInfo]:
        sessions: List[SessionInfo] = []
        for status in statuses:
            directory = self.status_dirs[status]
            try:
                files = sorted(directory.glob("*.json"))
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StateError(f"Failed to list sessions in {directory}: {exc}")

            for file in files:
                try:
                    data = json.loads(file.read_text(encoding="utf-8"))
                    sessions.append(
                        SessionInfo(
                            session_id=data["session_id"],
                            workflow_id=data["workflow_id"],
                            status=data["status"],
                            created_at=data["created_at"],
                            updated_at=data["updated_at"],
                            current_step_index=data.get("current_step_index") or 0,
                            total_steps=len(data.get("step_executions") or []),
                        )
                    )
                except (OSError, ValueError, KeyError, TypeError, SchemaError) as exc:
                    self._logger.warning(f"Could not parse session file {file.name}: {exc}")
        return sessions

    # ------------------------------------------------------------------
    # Public API
    async def initialize(self) -> None:
        """Ensure the base directory and all status directories exist."""
        try:
            await asyncio.to_thread(self._make_dirs)
        except OSError as exc:
            raise StateError(
                f"Failed to initialize state directories: {exc}", operation="write"
            ) from exc

    async def create_session(self, workflow_id: str, inputs: Dict[str, Any]) -> str:
        """Create and persist a new running session, returning its id."""
        now = utcnow()
        state = WorkflowSessionState(
            session_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            status="running",
            inputs=inputs,
            context=Context(inputs=inputs),
            created_at=now,
            updated_at=now,
        )
        await self.save_session(state)
        self._logger.debug(f"Created session {state.session_id} for workflow {workflow_id}")
        return state.session_id

    async def save_session(self, state: WorkflowSessionState) -> WorkflowSessionState:
        """Atomically write ``state`` into the directory for its status.

        ``updated_at`` is always re-stamped, whatever the caller supplied.
        Returns the state as written.
        """
        await self.initialize()
        stamped = state.model_copy(update={"updated_at": utcnow()})
        path = self.session_path(state.session_id, state.status)
        try:
            await asyncio.to_thread(
                self._write_atomic, path, stamped.model_dump_json(indent=2)
            )
        except Exception as exc:
            raise StateError(
                f"Failed to save session {state.session_id}: {exc}",
                session_id=state.session_id,
                operation="write",
            ) from exc
        return stamped

    async def load_session(
        self, session_id: str, expected_status: Optional[WorkflowStatus] = None
    ) -> WorkflowSessionState:
        """Load a session, probing every status directory unless told where."""
        if expected_status is not None:
            paths = [self.session_path(session_id, expected_status)]
        else:
            paths = self._candidate_paths(session_id)

        try:
            content = await asyncio.to_thread(self._read_first, paths)
        except FileNotFoundError as exc:
            raise StateError(
                f"Session {session_id} not found",
                session_id=session_id,
                operation="read",
                not_found=True,
            ) from exc
        except OSError as exc:
            raise StateError(
                f"Failed to load session {session_id}: {exc}",
                session_id=session_id,
                operation="read",
            ) from exc

        try:
            return WorkflowSessionState.model_validate_json(content)
        except SchemaError as exc:
            raise StateError(
                f"Failed to load session {session_id}: {exc}",
                session_id=session_id,
                operation="read",
            ) from exc

    async def update_session_status(
        self, session_id: str, new_status: WorkflowStatus
    ) -> None:
        """Rewrite the session under ``new_status`` and drop the old copy."""
        current = await self.load_session(session_id)
        old_path = self.session_path(session_id, current.status)

        await self.save_session(current.model_copy(update={"status": new_status}))

        if current.status != new_status:
            try:
                await asyncio.to_thread(old_path.unlink)
            except OSError as exc:
                self._logger.warning(
                    f"Could not remove old session file {old_path}: {exc}"
                )
        self._logger.debug(
            f"Session {session_id} moved from {current.status} to {new_status}"
        )

    async def update_context(self, session_id: str, patch: Dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the session context."""
        state = await self.load_session(session_id)
        context = Context.model_validate({**state.context.model_dump(), **patch})
        await self.save_session(state.model_copy(update={"context": context}))

    async def add_step_execution(
        self, session_id: str, execution: StepExecution
    ) -> None:
        """Append ``execution`` and advance ``current_step_index`` by one."""
        state = await self.load_session(session_id)
        await self.save_session(
            state.model_copy(
                update={
                    "step_executions": [*state.step_executions, execution],
                    "current_step_index": state.current_step_index + 1,
                }
            )
        )

    async def list_sessions(
        self, status: Optional[WorkflowStatus] = None
    ) -> List[SessionInfo]:
        """Summaries of stored sessions, most recently updated first.

        Files that cannot be parsed are skipped with a warning.
        """
        await self.initialize()
        statuses = [status] if status else list(SESSION_STATUSES)
        sessions = await asyncio.to_thread(self._scan, statuses)
        return sorted(sessions, key=lambda info: info.updated_at, reverse=True)

    async def delete_session(self, session_id: str) -> None:
        """Remove a session from whichever status directory holds it."""
        try:
            path = await asyncio.to_thread(self._find_existing, session_id)
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as exc:
            raise StateError(
                f"Session {session_id} not found",
                session_id=session_id,
                operation="read",
                not_found=True,
            ) from exc
        except OSError as exc:
            raise StateError(
                f"Failed to delete session {session_id}: {exc}",
                session_id=session_id,
                operation="write",
            ) from exc

    async def cleanup_sessions(
        self,
        max_age: Optional[timedelta] = None,
        statuses: Optional[Sequence[WorkflowStatus]] = None,
        dry_run: bool = False,
    ) -> CleanupResult:
        """Delete sessions last updated more than ``max_age`` ago.

        Args:
            max_age: Age threshold, 30 days by default.
            statuses: Statuses to consider, completed and failed by default.
            dry_run: Report what would be deleted without touching disk.
        """
        if max_age is None:
            max_age = timedelta(days=DEFAULT_CLEANUP_MAX_AGE_DAYS)
        if statuses is None:
            statuses = DEFAULT_CLEANUP_STATUSES

        cutoff = utcnow() - max_age
        result = CleanupResult()

        for status in statuses:
            try:
                sessions = await self.list_sessions(status)
            except StateError as exc:
                result.errors.append(
                    CleanupFailure(session_id=f"status:{status}", error=str(exc))
                )
                continue

            for session in sessions:
                if session.updated_at >= cutoff:
                    continue
                if dry_run:
                    result.deleted.append(session.session_id)
                    continue
                try:
                    await self.delete_session(session.session_id)
                    result.deleted.append(session.session_id)
                except StateError as exc:
                    result.errors.append(
                        CleanupFailure(session_id=session.session_id, error=str(exc))
                    )

        self._logger.info(
            f"Cleanup {'previewed' if dry_run else 'removed'} {len(result.deleted)} sessions"
        )
        return result
