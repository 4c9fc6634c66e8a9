"""Workflow engine driving sessions through their steps."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..contracts import (
    InputDefinition,
    StepExecution,
    Workflow,
    WorkflowState,
    WorkflowStatus,
    utcnow,
)
from ..errors import FieldError, StateError, StepExecutionError, ValidationError, WorkflowError
from ..persistence import SessionStore, StateManager, WorkflowSessionState
from .events import (
    EventBus,
    StepCompleted,
    StepFailed,
    StepStarted,
    WorkflowCompleted,
    WorkflowFailed,
    WorkflowPaused,
    WorkflowResumed,
    WorkflowStarted,
)
from .step_executor import StepExecutor

_INPUT_TYPES: Dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


class WorkflowSource(Protocol):
    async def load_workflow(self, workflow_id: str) -> Workflow:
        """Return the definition for ``workflow_id``."""


def _step_label(index: int) -> str:
    return f"step-{index}"


def _check_input(definition: InputDefinition, value: Any) -> Optional[FieldError]:
    expected = _INPUT_TYPES[definition.type]
    if isinstance(value, expected) and not (
        definition.type == "number" and isinstance(value, bool)
    ):
        return None
    return FieldError(
        field=f"inputs.{definition.name}",
        message=f"Expected {definition.type}, got {type(value).__name__}",
    )


class WorkflowEngine:
    """Run workflows step by step, persisting progress after every step.

    A session moves ``running -> completed`` when every step succeeds and
    ``running -> failed`` on the first unrecovered error. ``pause`` moves a
    running session to ``paused``; the step loop notices between steps and
    stops. ``resume`` needs a workflow loader to continue a paused session.
    """

    def __init__(
        self,
        state_manager: SessionStore | None = None,
        step_executor: StepExecutor | None = None,
        workflow_loader: WorkflowSource | None = None,
        events: EventBus | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.state_manager = state_manager or StateManager()
        self.step_executor = step_executor or StepExecutor()
        self.workflow_loader = workflow_loader
        self.events = events or EventBus()
        self._logger = logger or logging.getLogger(__name__)

    async def execute(
        self, workflow: Workflow, inputs: Optional[Dict[str, Any]] = None
    ) -> WorkflowState:
        """Run ``workflow`` from its first step in a new session.

        Raises:
            ValidationError: ``inputs`` do not satisfy the workflow's input
                definitions. No session is created in that case.
            WorkflowError: Any step or persistence failure during the run.
        """
        resolved = self.prepare_inputs(workflow, inputs or {})

        await self.state_manager.initialize()
        session_id = await self.state_manager.create_session(workflow.id, resolved)
        self._logger.info(f"Started workflow {workflow.id} in session {session_id}")
        await self.events.emit(WorkflowStarted(session_id=session_id, workflow_id=workflow.id))
        return await self._run(workflow, session_id)

    async def resume(self, session_id: str) -> WorkflowState:
        """Continue a paused session from its current step index."""
        await self.state_manager.initialize()
        state = await self._load_or_raise(session_id)
        if state.status != "paused":
            raise WorkflowError(
                f"Cannot resume session {session_id} with status {state.status}",
                workflow_id=state.workflow_id,
            )

        await self.events.emit(
            WorkflowResumed(
                session_id=session_id, step_id=_step_label(state.current_step_index)
            )
        )

        try:
            if self.workflow_loader is None:
                raise WorkflowError(
                    "Resume requires a workflow loader to obtain the workflow definition",
                    workflow_id=state.workflow_id,
                )
            workflow = await self.workflow_loader.load_workflow(state.workflow_id)
        except Exception as exc:
            await self._fail(session_id, exc)
            raise WorkflowError(
                f"Resume failed: {exc}", workflow_id=state.workflow_id
            ) from exc

        await self.state_manager.update_session_status(session_id, "running")
        self._logger.info(
            f"Resuming session {session_id} at step {state.current_step_index}"
        )
        return await self._run(workflow, session_id)

    async def pause(self, session_id: str) -> None:
        state = await self._load_or_raise(session_id)
        if state.status != "running":
            raise WorkflowError(
                f"Cannot pause session {session_id} with status {state.status}",
                workflow_id=state.workflow_id,
            )

        await self.state_manager.update_session_status(session_id, "paused")
        self._logger.info(f"Paused session {session_id}")
        await self.events.emit(
            WorkflowPaused(
                session_id=session_id, step_id=_step_label(state.current_step_index)
            )
        )

    async def get_status(self, session_id: str) -> Optional[WorkflowState]:
        """Public view of a session, or ``None`` if it cannot be loaded."""
        try:
            state = await self.state_manager.load_session(session_id)
        except StateError:
            return None
        return state.to_workflow_state()

    async def list_sessions(
        self, status: Optional[WorkflowStatus] = None
    ) -> List[WorkflowState]:
        states: List[WorkflowState] = []
        for info in await self.state_manager.list_sessions(status):
            try:
                state = await self.state_manager.load_session(info.session_id)
            except StateError as exc:
                if not exc.not_found:
                    raise
                continue
            states.append(state.to_workflow_state())
        return states

    async def cleanup(
        self,
        max_age: Optional[timedelta] = None,
        statuses: Optional[Sequence[WorkflowStatus]] = None,
    ) -> int:
        """Delete old sessions and return how many were removed."""
        result = await self.state_manager.cleanup_sessions(
            max_age=max_age, statuses=statuses
        )
        return len(result.deleted)

    def prepare_inputs(
        self, workflow: Workflow, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Check ``inputs`` against the workflow's definitions and fill defaults."""
        resolved = dict(inputs)
        errors: List[FieldError] = []
        for definition in workflow.inputs:
            if definition.name in resolved:
                error = _check_input(definition, resolved[definition.name])
                if error is not None:
                    errors.append(error)
            elif definition.default is not None:
                resolved[definition.name] = definition.default
            elif definition.required:
                errors.append(
                    FieldError(
                        field=f"inputs.{definition.name}",
                        message="Required input is missing",
                    )
                )
        if errors:
            raise ValidationError(f"Invalid inputs for workflow {workflow.id}", errors)
        return resolved

    async def _run(self, workflow: Workflow, session_id: str) -> WorkflowState:
        try:
            state = await self.state_manager.load_session(session_id)
            state = await self._execute_steps(workflow, state)
            if state.status != "running":
                self._logger.info(
                    f"Session {session_id} stopped at step {state.current_step_index} "
                    f"with status {state.status}"
                )
                return state.to_workflow_state()

            outputs = self._collect_outputs(workflow, state)
            context = state.context.model_copy(update={"outputs": outputs})
            await self.state_manager.save_session(
                state.model_copy(update={"context": context, "outputs": outputs})
            )
            await self.state_manager.update_session_status(session_id, "completed")
        except Exception as exc:
            await self._fail(session_id, exc)
            raise WorkflowError(
                f"Workflow execution failed: {exc}",
                workflow_id=workflow.id,
                step_id=getattr(exc, "step_id", None),
            ) from exc

        self._logger.info(f"Workflow {workflow.id} completed in session {session_id}")
        await self.events.emit(WorkflowCompleted(session_id=session_id, outputs=outputs))
        final = await self.state_manager.load_session(session_id, "completed")
        return final.to_workflow_state()

    async def _execute_steps(
        self, workflow: Workflow, state: WorkflowSessionState
    ) -> WorkflowSessionState:
        session_id = state.session_id
        for index in range(state.current_step_index, len(workflow.steps)):
            current = await self.state_manager.load_session(session_id)
            if current.status != "running":
                return current

            step = workflow.steps[index]
            await self.events.emit(StepStarted(session_id=session_id, step_id=step.id))
            started_at = utcnow()
            variables = dict(current.context.variables)

            try:
                result = await self.step_executor.execute_step(
                    step, current.context, session_id, workflow_id=workflow.id
                )
            except Exception as exc:
                message = str(exc)
                self._logger.error(f"Step {step.id} failed: {message}")
                await self.state_manager.add_step_execution(
                    session_id,
                    StepExecution(
                        step_id=step.id,
                        started_at=started_at,
                        completed_at=utcnow(),
                        status="failed",
                        inputs=variables,
                        outputs={},
                        error=message,
                    ),
                )
                await self.events.emit(
                    StepFailed(session_id=session_id, step_id=step.id, error=message)
                )
                raise StepExecutionError(
                    f"Step {step.id} failed: {message}",
                    workflow_id=workflow.id,
                    step_id=step.id,
                ) from exc

            await self.state_manager.update_context(
                session_id, {"variables": {**variables, **result.outputs}}
            )
            await self.state_manager.add_step_execution(
                session_id,
                StepExecution(
                    step_id=step.id,
                    started_at=started_at,
                    completed_at=utcnow(),
                    status="success",
                    inputs=variables,
                    outputs=result.outputs,
                    retry_count=result.retry_count,
                ),
            )
            self._logger.debug(f"Step {step.id} completed in session {session_id}")
            await self.events.emit(
                StepCompleted(session_id=session_id, step_id=step.id, outputs=result.outputs)
            )

        return await self.state_manager.load_session(session_id)

    def _collect_outputs(
        self, workflow: Workflow, state: WorkflowSessionState
    ) -> Dict[str, Any]:
        variables = state.context.variables
        return {
            output.name: variables[output.name]
            for output in workflow.outputs
            if output.name in variables
        }

    async def _load_or_raise(self, session_id: str) -> WorkflowSessionState:
        try:
            return await self.state_manager.load_session(session_id)
        except StateError as exc:
            raise WorkflowError(f"Session {session_id} not found") from exc

    async def _fail(self, session_id: str, error: BaseException) -> None:
        await self.state_manager.update_session_status(session_id, "failed")
        await self.events.emit(WorkflowFailed(session_id=session_id, error=str(error)))
